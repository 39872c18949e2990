from decimal import Decimal

# iKAS (L2 native unit) uses the same 18-decimal fixed point as ether.
WEI_PER_IKAS = Decimal(10) ** 18


def wei_to_ikas(wei: int) -> float:
    """Convert an 18-decimal base-unit amount to display units."""
    if not wei:
        return 0.0
    return float(Decimal(int(wei)) / WEI_PER_IKAS)


def format_large_number(num: int) -> str:
    """1234567 -> "1,234,567"."""
    return f"{int(num):,}"


def format_latency_us(avg_us: float) -> str:
    """Adaptive latency: microseconds below 1ms, milliseconds above."""
    if avg_us < 1000.0:
        return f"{avg_us:.0f}µs"
    return f"{avg_us / 1000.0:.1f}ms"


def parse_hex_int(value, default: int = 0) -> int:
    """JSON-RPC quantities are 0x-prefixed hex strings, tolerate ints/None."""
    if value is None:
        return default
    if isinstance(value, int):
        return value
    try:
        text = str(value).strip()
        if text.lower().startswith("0x"):
            return int(text, 16) if len(text) > 2 else default
        return int(text)
    except ValueError:
        return default
