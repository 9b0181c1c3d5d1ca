"""PortDog Utils"""
from utils.logger     import get_logger, set_level, log
from utils.validators import validate_target, validate_port, sanitize_banner
from utils.constants  import PortState, TIMING_PROFILES
__all__ = ["get_logger", "set_level", "log", "validate_target", "validate_port",
           "sanitize_banner", "PortState", "TIMING_PROFILES"]
