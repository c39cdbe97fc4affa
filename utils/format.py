def format_duration(total_seconds: float) -> str:
    """Format elapsed seconds as ``HH:MM:SS``. Negative input clamps to zero."""
    clamped = max(0.0, float(total_seconds))
    hours = int(clamped // 3600)
    minutes = int((clamped % 3600) // 60)
    seconds = int(clamped % 60)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"
