import os
import sys
import threading
from datetime import date

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from services.po_number_generator import PONumberGenerator


def _generator(prefix="PO"):
    return PONumberGenerator(prefix, today=lambda: date(2025, 3, 7))


def test_format_is_prefix_date_stamp_and_two_digit_sequence():
    generator = _generator()
    assert generator.generate() == "PO25030701"
    assert generator.generate() == "PO25030702"
    assert generator.sequence == 2


def test_reset_restarts_sequence_at_one():
    generator = _generator()
    for _ in range(7):
        generator.generate()
    generator.reset()
    assert [generator.generate()[-2:] for _ in range(3)] == ["01", "02", "03"]


def test_reset_keeps_date_stamp():
    generator = _generator()
    stamp = generator.date_stamp
    generator.reset()
    assert generator.date_stamp == stamp
    assert generator.order_date == date(2025, 3, 7)


def test_custom_prefix():
    assert _generator("SF").generate() == "SF25030701"


def test_numbers_unique_under_concurrent_generation():
    generator = _generator()
    results = []
    lock = threading.Lock()

    def worker():
        for _ in range(10):
            number = generator.generate()
            with lock:
                results.append(number)

    threads = [threading.Thread(target=worker) for _ in range(5)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(results) == 50
    assert len(set(results)) == 50


def test_fresh_generator_starts_from_zero():
    first = _generator()
    first.generate()
    second = _generator()
    assert second.generate() == "PO25030701"
