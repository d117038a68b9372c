# words.py
from models import money

ONES = ["", "One", "Two", "Three", "Four", "Five", "Six", "Seven", "Eight", "Nine",
        "Ten", "Eleven", "Twelve", "Thirteen", "Fourteen", "Fifteen", "Sixteen",
        "Seventeen", "Eighteen", "Nineteen"]
TENS = ["", "", "Twenty", "Thirty", "Forty", "Fifty", "Sixty", "Seventy", "Eighty", "Ninety"]

# Indian grouping, largest first
GROUPS = [
    (10_000_000, "Crore"),
    (100_000, "Lakh"),
    (1_000, "Thousand"),
    (100, "Hundred"),
]


def _below_hundred(n: int):
    if n < 20:
        return [ONES[n]] if n else []
    words = [TENS[n // 10]]
    if n % 10:
        words.append(ONES[n % 10])
    return words


def _integer_words(n: int):
    words = []
    for size, name in GROUPS:
        count, n = divmod(n, size)
        if count:
            # Counts of 100+ crore recurse so large amounts still read naturally
            words.extend(_integer_words(count) if count >= 100 else _below_hundred(count))
            words.append(name)
    words.extend(_below_hundred(n))
    return words


def integer_to_words(n: int) -> str:
    """1234567 -> 'Twelve Lakh Thirty Four Thousand Five Hundred Sixty Seven'."""
    if n < 0:
        raise ValueError("Cannot convert a negative number to words.")
    return " ".join(_integer_words(n)) or "Zero"


def amount_to_words(amount) -> str:
    """
    Transcribe a rupee amount for the invoice, e.g.
    1234567.89 -> 'Rupees Twelve Lakh Thirty Four Thousand Five Hundred
    Sixty Seven and Eighty Nine Paise Only'.
    """
    amount = money(amount)
    if amount < 0:
        raise ValueError("Cannot convert a negative amount to words.")
    rupees = int(amount)
    paise = int((amount - rupees) * 100)
    text = f"Rupees {integer_to_words(rupees)}"
    if paise:
        text += f" and {integer_to_words(paise)} Paise"
    return text + " Only"
