"""Protocol layer: message framing, CRC, command builders, and telemetry parsing."""

from .framing import Frame, FrameParser, ParseState, build_frame, parse_frame
from .commands import MavCommand, build_command_long
from .messages import MessageId
