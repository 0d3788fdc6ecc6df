"""Currency -- ISO 4217 registry of the codes a project can be billed in."""

from dataclasses import dataclass
from decimal import Decimal
from typing import ClassVar


@dataclass(frozen=True)
class CurrencyInfo:
    """Information about a single ISO 4217 currency."""

    code: str
    decimal_places: int
    name: str

    @property
    def quantum(self) -> Decimal:
        """Smallest representable amount, for Decimal.quantize()."""
        return Decimal(1).scaleb(-self.decimal_places)


class CurrencyRegistry:
    """
    Registry of the ISO 4217 currencies a project can be billed in.

    Project currencies are stored as entered (Worklenz historically saves
    lowercase codes such as ``"usd"``); lookups normalise case and whitespace.
    Unknown codes are rejected by ``validate``; ``get_decimal_places``
    answers the default precision for them so legacy rows still render.
    """

    DEFAULT_DECIMAL_PLACES: ClassVar[int] = 2

    _CURRENCIES: ClassVar[dict[str, CurrencyInfo]] = {
        info.code: info
        for info in (
            CurrencyInfo("USD", 2, "US Dollar"),
            CurrencyInfo("EUR", 2, "Euro"),
            CurrencyInfo("GBP", 2, "Pound Sterling"),
            CurrencyInfo("AUD", 2, "Australian Dollar"),
            CurrencyInfo("CAD", 2, "Canadian Dollar"),
            CurrencyInfo("NZD", 2, "New Zealand Dollar"),
            CurrencyInfo("CHF", 2, "Swiss Franc"),
            CurrencyInfo("SEK", 2, "Swedish Krona"),
            CurrencyInfo("NOK", 2, "Norwegian Krone"),
            CurrencyInfo("DKK", 2, "Danish Krone"),
            CurrencyInfo("PLN", 2, "Polish Zloty"),
            CurrencyInfo("CZK", 2, "Czech Koruna"),
            CurrencyInfo("INR", 2, "Indian Rupee"),
            CurrencyInfo("LKR", 2, "Sri Lankan Rupee"),
            CurrencyInfo("PKR", 2, "Pakistani Rupee"),
            CurrencyInfo("BDT", 2, "Bangladeshi Taka"),
            CurrencyInfo("SGD", 2, "Singapore Dollar"),
            CurrencyInfo("MYR", 2, "Malaysian Ringgit"),
            CurrencyInfo("PHP", 2, "Philippine Peso"),
            CurrencyInfo("THB", 2, "Thai Baht"),
            CurrencyInfo("IDR", 2, "Indonesian Rupiah"),
            CurrencyInfo("CNY", 2, "Chinese Yuan"),
            CurrencyInfo("HKD", 2, "Hong Kong Dollar"),
            CurrencyInfo("AED", 2, "UAE Dirham"),
            CurrencyInfo("SAR", 2, "Saudi Riyal"),
            CurrencyInfo("ZAR", 2, "South African Rand"),
            CurrencyInfo("NGN", 2, "Nigerian Naira"),
            CurrencyInfo("KES", 2, "Kenyan Shilling"),
            CurrencyInfo("BRL", 2, "Brazilian Real"),
            CurrencyInfo("MXN", 2, "Mexican Peso"),
            CurrencyInfo("ARS", 2, "Argentine Peso"),
            CurrencyInfo("TRY", 2, "Turkish Lira"),
            CurrencyInfo("JPY", 0, "Japanese Yen"),
            CurrencyInfo("KRW", 0, "South Korean Won"),
            CurrencyInfo("VND", 0, "Vietnamese Dong"),
            CurrencyInfo("CLP", 0, "Chilean Peso"),
            CurrencyInfo("ISK", 0, "Icelandic Krona"),
            CurrencyInfo("BHD", 3, "Bahraini Dinar"),
            CurrencyInfo("KWD", 3, "Kuwaiti Dinar"),
            CurrencyInfo("OMR", 3, "Omani Rial"),
            CurrencyInfo("JOD", 3, "Jordanian Dinar"),
        )
    }

    @classmethod
    def is_valid(cls, code: str) -> bool:
        if not code or not isinstance(code, str):
            return False
        return code.upper().strip() in cls._CURRENCIES

    @classmethod
    def get_info(cls, code: str) -> CurrencyInfo | None:
        if not code or not isinstance(code, str):
            return None
        return cls._CURRENCIES.get(code.upper().strip())

    @classmethod
    def get_decimal_places(cls, code: str) -> int:
        info = cls.get_info(code)
        return info.decimal_places if info else cls.DEFAULT_DECIMAL_PLACES

    @classmethod
    def validate(cls, code: str) -> str:
        """Validate and normalize a currency code to upper case."""
        if not code or not isinstance(code, str):
            raise ValueError(f"Invalid currency code: {code!r}")

        normalized = code.upper().strip()
        if len(normalized) != 3:
            raise ValueError(f"Currency code must be 3 characters: {code!r}")
        if normalized not in cls._CURRENCIES:
            raise ValueError(f"Invalid ISO 4217 currency code: {code!r}")
        return normalized

    @classmethod
    def all_codes(cls) -> frozenset[str]:
        return frozenset(cls._CURRENCIES.keys())

