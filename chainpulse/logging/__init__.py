"""
Structured logging for Chainpulse.

JSON logs with timestamp, level and event_type. Use get_logger() in every module.
"""

from chainpulse.logging.logger import get_logger, mask_address, mask_email, mask_user_id

__all__ = ["get_logger", "mask_address", "mask_email", "mask_user_id"]
