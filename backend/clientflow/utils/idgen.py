"""ID Generation Utilities"""
import uuid

from .time import utc_now


def generate_correlation_id() -> str:
    """
    Generate a correlation ID for tracing one store or migration run
    
    Returns:
        Correlation ID string with timestamp prefix
    """
    timestamp = utc_now().strftime("%Y%m%d%H%M%S")
    unique_part = uuid.uuid4().hex[:8]
    return f"COR-{timestamp}-{unique_part}"


def generate_temp_suffix() -> str:
    """Short random suffix for temp files written next to a record"""
    return uuid.uuid4().hex[:12]
