from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from zoneinfo import ZoneInfo

if __name__ == '__main__':
    from os.path import abspath
    from sys import path as sys_path

    sys_path.append(abspath('.'))

from app.config import Config


CENT = Decimal('0.01')


class DateTz(datetime):
    @classmethod
    def local(cls, datetime: datetime | None = None, tz: str = Config.local_timezone) -> 'DateTz':
        if datetime:
            return cls(
                datetime.year,
                datetime.month,
                datetime.day,
                datetime.hour,
                datetime.minute,
                datetime.second,
                datetime.microsecond,
                tzinfo=ZoneInfo(tz),
            )
        else:
            return cls.now(ZoneInfo(tz))


def to_decimal(value: Decimal | int | float | str) -> Decimal:
    """
    Convierte a Decimal sin pasar por la representación binaria de float.
    """
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value).strip())
    except InvalidOperation:
        raise ValueError(f'Valor numérico no válido: {value}')


def round_money(value: Decimal | int | float | str) -> Decimal:
    """Redondeo a centavos, mitad hacia arriba."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def format_money(value: Decimal | int | float | str) -> str:
    return f'{round_money(value):.2f}'


def format_quantity(value: Decimal | int | float | str) -> str:
    """1.00 -> '1', 2.50 -> '2.5'"""
    normalized = to_decimal(value).normalize()
    return format(normalized, 'f')


def pad_number(number: int, width: int) -> str:
    return str(number).zfill(width)


if __name__ == '__main__':
    print(DateTz.local().isoformat(timespec='seconds'))
    assert format_money('2.345') == '2.35'
    assert format_quantity(Decimal('10.00')) == '10'
