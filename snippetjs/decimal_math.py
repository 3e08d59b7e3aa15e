"""
SnippetJS - Fixed-Point Decimal Arithmetic
Signed arbitrary-precision numbers with exactly 18 fractional digits.

A value is  sign * magnitude * 10**-18  where magnitude is a Python int.
Anything finer than 10**-18 is truncated toward zero, never rounded.
NaN is a quiescent value: it flows through every operation instead of raising.
"""

import re
from dataclasses import dataclass
from decimal import Decimal, ROUND_DOWN, localcontext
from typing import Optional, Union

SCALE_DIGITS = 18
SCALE = 10 ** SCALE_DIGITS

# Integer exponents above this are not expanded digit by digit.
MAX_INT_EXPONENT = 4096

_DECIMAL_TEXT_RE = re.compile(r'([+-]?)(\d*)(?:\.(\d*))?(?:[eE]([+-]?\d+))?\Z')
_RADIX_TEXT_RE = re.compile(r'0([xXoObB])([0-9a-fA-F]+)\Z')
_LEGACY_OCTAL_RE = re.compile(r'0[0-7]+\Z')
_RADIX_BASES = {'x': 16, 'o': 8, 'b': 2}

# JS StringToNumber trims these.
_JS_WHITESPACE = " \t\n\r\f\v"


def _tdiv(a: int, b: int) -> int:
    """Integer division truncating toward zero."""
    q = abs(a) // abs(b)
    return -q if (a < 0) != (b < 0) else q


@dataclass(frozen=True)
class FixedDecimal:
    magnitude: int = 0
    negative: bool = False
    nan: bool = False

    def __post_init__(self):
        if self.magnitude < 0:
            raise ValueError("magnitude must be non-negative")
        # -0 collapses to 0; NaN carries no digits
        if self.negative and (self.magnitude == 0 or self.nan):
            object.__setattr__(self, "negative", False)
        if self.nan and self.magnitude:
            object.__setattr__(self, "magnitude", 0)

    # ------------------------------------------------------------------ construction

    @classmethod
    def from_raw(cls, raw: int) -> "FixedDecimal":
        """Build from a signed integer already scaled by 10**18."""
        return cls(magnitude=abs(raw), negative=raw < 0)

    @classmethod
    def from_int(cls, value: int) -> "FixedDecimal":
        return cls.from_raw(value * SCALE)

    @classmethod
    def from_literal(cls, int_digits: str, frac_digits: str = "", exponent: int = 0) -> "FixedDecimal":
        """
        Build from the pieces of a decimal literal, e.g. ("1", "5", -3) for 1.5e-3.
        Digits beyond the 18th fractional place are dropped.
        """
        digits = (int_digits or "0") + (frac_digits or "")
        mantissa = int(digits) if digits else 0
        shift = SCALE_DIGITS - len(frac_digits or "") + exponent
        if shift >= 0:
            return cls(magnitude=mantissa * 10 ** shift)
        return cls(magnitude=mantissa // 10 ** (-shift))

    @classmethod
    def from_radix(cls, digits: str, base: int) -> "FixedDecimal":
        return cls.from_int(int(digits, base))

    @classmethod
    def from_decimal(cls, value: Decimal) -> "FixedDecimal":
        if not value.is_finite():
            return NAN
        with localcontext() as ctx:
            ctx.prec = max(60, len(value.as_tuple().digits) + SCALE_DIGITS + 10)
            raw = value.scaleb(SCALE_DIGITS).to_integral_value(rounding=ROUND_DOWN)
        return cls.from_raw(int(raw))

    @classmethod
    def from_host(cls, value: Union["FixedDecimal", int, float, Decimal, str]) -> "FixedDecimal":
        """Convert a plain Python number into a FixedDecimal."""
        if isinstance(value, FixedDecimal):
            return value
        if isinstance(value, bool):
            return ONE if value else ZERO
        if isinstance(value, int):
            return cls.from_int(value)
        if isinstance(value, float):
            if value != value:
                return NAN
            return cls.from_decimal(Decimal(repr(value)))
        if isinstance(value, Decimal):
            return cls.from_decimal(value)
        if isinstance(value, str):
            return cls.parse(value)
        raise TypeError(f"cannot convert {type(value).__name__} to FixedDecimal")

    @classmethod
    def parse(cls, text: str) -> "FixedDecimal":
        """
        JS string-to-number conversion.
        Blank text is 0; 0x / 0o / 0b prefixes and legacy leading-zero octal
        are honoured; anything else that is not a decimal number is NaN.
        """
        text = text.strip(_JS_WHITESPACE)
        if not text:
            return ZERO
        m = _RADIX_TEXT_RE.match(text)
        if m:
            base = _RADIX_BASES[m.group(1).lower()]
            try:
                return cls.from_radix(m.group(2), base)
            except ValueError:
                return NAN
        if _LEGACY_OCTAL_RE.match(text):
            return cls.from_radix(text, 8)
        m = _DECIMAL_TEXT_RE.match(text)
        if not m or not (m.group(2) or m.group(3)):
            return NAN
        sign, int_digits, frac_digits, exp = m.groups()
        value = cls.from_literal(int_digits, frac_digits or "", int(exp) if exp else 0)
        return -value if sign == '-' else value

    # ------------------------------------------------------------------ inspection

    @property
    def raw(self) -> int:
        """Signed scaled integer (meaningless for NaN)."""
        return -self.magnitude if self.negative else self.magnitude

    @property
    def is_zero(self) -> bool:
        return not self.nan and self.magnitude == 0

    @property
    def is_integer(self) -> bool:
        return not self.nan and self.magnitude % SCALE == 0

    def truncate(self) -> int:
        """Integer part, truncated toward zero. NaN truncates to 0."""
        if self.nan:
            return 0
        return _tdiv(self.raw, SCALE)

    def to_decimal(self) -> Decimal:
        return Decimal(self.raw).scaleb(-SCALE_DIGITS)

    def compare(self, other: "FixedDecimal") -> Optional[int]:
        """-1, 0 or 1; None when either side is NaN."""
        if self.nan or other.nan:
            return None
        a, b = self.raw, other.raw
        return (a > b) - (a < b)

    # ------------------------------------------------------------------ arithmetic

    def __neg__(self) -> "FixedDecimal":
        if self.nan:
            return self
        return FixedDecimal(self.magnitude, not self.negative)

    def __add__(self, other: "FixedDecimal") -> "FixedDecimal":
        if self.nan or other.nan:
            return NAN
        return FixedDecimal.from_raw(self.raw + other.raw)

    def __sub__(self, other: "FixedDecimal") -> "FixedDecimal":
        if self.nan or other.nan:
            return NAN
        return FixedDecimal.from_raw(self.raw - other.raw)

    def __mul__(self, other: "FixedDecimal") -> "FixedDecimal":
        if self.nan or other.nan:
            return NAN
        return FixedDecimal.from_raw(_tdiv(self.raw * other.raw, SCALE))

    def __truediv__(self, other: "FixedDecimal") -> "FixedDecimal":
        if self.nan or other.nan or other.is_zero:
            return NAN
        return FixedDecimal.from_raw(_tdiv(self.raw * SCALE, other.raw))

    def __mod__(self, other: "FixedDecimal") -> "FixedDecimal":
        # sign follows the dividend, as in JS
        if self.nan or other.nan or other.is_zero:
            return NAN
        return FixedDecimal(self.magnitude % other.magnitude, self.negative)

    def __pow__(self, exponent: "FixedDecimal") -> "FixedDecimal":
        if self.nan or exponent.nan:
            return NAN
        if exponent.is_zero:
            return ONE
        if exponent.is_integer:
            return self._int_pow(exponent.truncate())
        if self.negative:
            return NAN
        if self.is_zero:
            return NAN if exponent.negative else ZERO
        with localcontext() as ctx:
            ctx.prec = 80
            result = self.to_decimal() ** exponent.to_decimal()
        return FixedDecimal.from_decimal(result)

    def _int_pow(self, n: int) -> "FixedDecimal":
        if abs(n) > MAX_INT_EXPONENT:
            if self.magnitude == SCALE:
                return ONE if not self.negative or n % 2 == 0 else -ONE
            shrinks = self.magnitude < SCALE
            if shrinks == (n > 0):
                return ZERO
            return NAN
        if n < 0:
            return ONE / self._int_pow(-n)
        if n == 1:
            return self
        raw = self.raw ** n
        return FixedDecimal.from_raw(_tdiv(raw, SCALE ** (n - 1)))

    # ------------------------------------------------------------------ formatting

    def to_string(self) -> str:
        if self.nan:
            return "NaN"
        whole, frac = divmod(self.magnitude, SCALE)
        text = str(whole)
        if frac:
            text += "." + str(frac).zfill(SCALE_DIGITS).rstrip("0")
        return "-" + text if self.negative else text

    def __str__(self) -> str:
        return self.to_string()


ZERO = FixedDecimal()
ONE = FixedDecimal(SCALE)
NAN = FixedDecimal(nan=True)
