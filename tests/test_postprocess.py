import datetime as dt
import unittest

from receipt_recognition.core.models import RoiText, RoiType
from receipt_recognition.core.postprocess import (amount_candidates, compute_confidence,
                                                  date_candidates, extract_amount, extract_date,
                                                  format_date, is_valid_date, normalize_text,
                                                  parse_kanji_number, postprocess,
                                                  select_best_amount, select_best_date)
from receipt_recognition.core.utils import MAX_AMOUNT

TODAY = dt.date(2024, 10, 19)


class TestNormalizeText(unittest.TestCase):
    def test_full_width_to_half_width(self) -> None:
        self.assertEqual(normalize_text("  ＴＯＴＡＬ　１，２３４  \n\n"), "TOTAL 1,234")

    def test_letter_digit_confusions(self) -> None:
        self.assertEqual(normalize_text("1O0"), "100")
        self.assertEqual(normalize_text("¥l2O0"), "¥1200")
        self.assertEqual(normalize_text("TOTAL"), "TOTAL")

    def test_repeated_separators_collapse(self) -> None:
        self.assertEqual(normalize_text("12,,345"), "12,345")
        self.assertEqual(normalize_text("1...5"), "1.5")

    def test_whitespace_and_blank_lines(self) -> None:
        self.assertEqual(normalize_text("a \t b\n   \n c "), "a b\nc")
        self.assertEqual(normalize_text(""), "")

    def test_idempotent(self) -> None:
        samples = [
            "ＴＯＴＡＬ　１，２３４",
            "lO0O1 ,, .. ||2",
            "合計  ￥１，２３４\n\n\n２０２４年０７月２４日",
            "O",
            "Il1|O0oO",
        ]
        for sample in samples:
            once = normalize_text(sample)
            self.assertEqual(normalize_text(once), once, sample)


class TestExtractAmount(unittest.TestCase):
    def test_keyword_and_currency(self) -> None:
        self.assertEqual(extract_amount("合計 ¥1,234"), 1234)

    def test_full_width_yen(self) -> None:
        self.assertEqual(extract_amount("合計　￥１，２３４"), 1234)

    def test_yen_suffix(self) -> None:
        self.assertEqual(extract_amount("お会計 3,300円"), 3300)

    def test_english_keyword(self) -> None:
        self.assertEqual(extract_amount("TOTAL: 1234"), 1234)

    def test_decimals_are_floored(self) -> None:
        self.assertEqual(extract_amount("Total $12.99"), 12)

    def test_total_outranks_subtotal(self) -> None:
        self.assertEqual(extract_amount("小計 1,000\n合計 1,100"), 1100)
        self.assertEqual(extract_amount("Subtotal $9.50\nTotal $10.26"), 10)

    def test_largest_value_among_equal_priority(self) -> None:
        self.assertEqual(extract_amount("¥800\n¥1,200"), 1200)

    def test_cash_tendered_and_change_are_ignored(self) -> None:
        text = "小計 ¥1,019\n合計 ¥1,100\nお預り ¥5,000\nお釣り ¥3,900"
        self.assertEqual(extract_amount(text), 1100)
        self.assertEqual(extract_amount("TOTAL 2,480\nCASH 3,000\nCHANGE 520"), 2480)
        self.assertNotIn(5000, [c.value for c in amount_candidates(text)])

    def test_year_before_kanji_date_is_not_an_amount(self) -> None:
        self.assertIsNone(extract_amount("2024年07月24日"))
        self.assertIsNone(extract_amount("2024 年 7 月"))

    def test_phone_numbers_are_not_amounts(self) -> None:
        self.assertEqual(extract_amount("Tel 03-1234-5678\n¥980"), 980)

    def test_no_amount(self) -> None:
        self.assertIsNone(extract_amount(""))
        self.assertIsNone(extract_amount("thank you"))
        self.assertIsNone(extract_amount("¥0"))
        self.assertIsNone(extract_amount("¥10,000,000"))

    def test_candidates_within_range(self) -> None:
        text = "合計 ¥1,234\n預り 99,999,999\nNo. 0001 123456789012"
        for candidate in amount_candidates(text):
            self.assertGreater(candidate.value, 0)
            self.assertLess(candidate.value, MAX_AMOUNT)


class TestExtractDate(unittest.TestCase):
    def test_japanese_format(self) -> None:
        self.assertEqual(extract_date("2024年07月24日", TODAY), "2024-07-24")

    def test_era_abbreviation(self) -> None:
        self.assertEqual(extract_date("R6.07.24", TODAY), "2024-07-24")

    def test_era_names(self) -> None:
        self.assertEqual(extract_date("令和元年5月1日", TODAY), "2019-05-01")
        self.assertEqual(extract_date("平成31年4月30日", TODAY), "2019-04-30")

    def test_iso_and_slashes(self) -> None:
        self.assertEqual(extract_date("2024/7/4 12:30", TODAY), "2024-07-04")
        self.assertEqual(extract_date("2024-07-24", TODAY), "2024-07-24")

    def test_kanji_numerals(self) -> None:
        self.assertEqual(extract_date("二〇二四年七月二十四日", TODAY), "2024-07-24")
        self.assertEqual(extract_date("令和六年七月二十四日", TODAY), "2024-07-24")

    def test_month_day_uses_current_year(self) -> None:
        self.assertEqual(extract_date("7/24", TODAY), "2024-07-24")
        self.assertEqual(extract_date("7月24日", TODAY), "2024-07-24")

    def test_invalid_dates_rejected(self) -> None:
        self.assertIsNone(extract_date("2023-02-29", TODAY))
        self.assertIsNone(extract_date("2024-13-01", TODAY))
        self.assertEqual(extract_date("2024-02-29", TODAY), "2024-02-29")

    def test_no_date(self) -> None:
        self.assertIsNone(extract_date("", TODAY))
        self.assertIsNone(extract_date("合計 ¥1,234", TODAY))

    def test_year_bearing_patterns_come_first(self) -> None:
        self.assertEqual([c.value for c in date_candidates("2024/07/24", TODAY)], ["2024-07-24"])
        self.assertEqual([c.value for c in date_candidates("2024年7月24日", TODAY)], ["2024-07-24"])
        self.assertEqual(extract_date("7/20 2023-07-24", TODAY), "2023-07-24")

    def test_format_round_trip(self) -> None:
        days = [dt.date(2023, 1, 1) + dt.timedelta(days=n) for n in range(365 + 366)]
        days += [dt.date(1900, 1, 1), dt.date(1900, 12, 31), dt.date(2100, 1, 1), dt.date(2100, 12, 31)]
        for day in days:
            self.assertTrue(is_valid_date(day.year, day.month, day.day), day)
            formatted = format_date(day.year, day.month, day.day)
            self.assertEqual(formatted, day.isoformat())
            self.assertEqual(extract_date(formatted, TODAY), formatted)


class TestKanjiNumbers(unittest.TestCase):
    def test_place_values(self) -> None:
        self.assertEqual(parse_kanji_number("十"), 10)
        self.assertEqual(parse_kanji_number("二十四"), 24)
        self.assertEqual(parse_kanji_number("千二百"), 1200)
        self.assertEqual(parse_kanji_number("三万五千"), 35000)

    def test_positional_digits(self) -> None:
        self.assertEqual(parse_kanji_number("二〇二四"), 2024)

    def test_invalid(self) -> None:
        with self.assertRaises(ValueError):
            parse_kanji_number("")
        with self.assertRaises(ValueError):
            parse_kanji_number("二X")


class TestSelection(unittest.TestCase):
    def test_best_date_is_closest_to_today(self) -> None:
        self.assertEqual(select_best_date(["2019-07-24", "2024-07-24"], TODAY), "2024-07-24")

    def test_best_date_tie_keeps_first(self) -> None:
        self.assertEqual(select_best_date(["2024-10-17", "2024-10-21"], TODAY), "2024-10-17")

    def test_best_date_empty(self) -> None:
        self.assertIsNone(select_best_date([], TODAY))

    def test_best_amount_is_median(self) -> None:
        self.assertEqual(select_best_amount([1000, 1200, 1100]), 1100)
        self.assertEqual(select_best_amount([1000, 1001]), 1001)
        self.assertEqual(select_best_amount([1234]), 1234)

    def test_best_amount_ignores_out_of_range(self) -> None:
        self.assertIsNone(select_best_amount([]))
        self.assertIsNone(select_best_amount([0, MAX_AMOUNT]))
        self.assertEqual(select_best_amount([0, 500, MAX_AMOUNT]), 500)

    def test_confidence(self) -> None:
        self.assertEqual(compute_confidence([], False, False), 0.0)
        self.assertAlmostEqual(compute_confidence([0.9], True, False), 0.85)
        self.assertAlmostEqual(compute_confidence([], True, True), 0.8)
        self.assertLessEqual(compute_confidence([1.5, 1.5], True, True), 1.0)


class TestPostprocess(unittest.TestCase):
    def test_merges_whole_image_and_regions(self) -> None:
        result = postprocess(
            "合計 ¥1,234\n2024年07月24日",
            [
                RoiText("¥1,234", RoiType.AMOUNT, 0.8),
                RoiText("2024年07月24日", RoiType.DATE, 0.9),
            ],
            today=TODAY,
        )
        self.assertEqual(result["date"], "2024-07-24")
        self.assertEqual(result["amount"], 1234)
        self.assertAlmostEqual(result["confidence"], (0.8 + 0.9 + 0.8 + 0.8) / 4)
        self.assertEqual(result["rawText"], "合計 ¥1,234\n2024年07月24日")

    def test_regions_without_fields_do_not_contribute(self) -> None:
        result = postprocess("合計 ¥1,234", [RoiText("???", RoiType.AMOUNT, 0.95)], today=TODAY)
        self.assertEqual(result["amount"], 1234)
        self.assertIsNone(result["date"])
        self.assertAlmostEqual(result["confidence"], 0.8)

    def test_bare_total_beats_year(self) -> None:
        result = postprocess("2024年07月24日 14:05\nコーヒー\n480", today=TODAY)
        self.assertEqual(result["date"], "2024-07-24")
        self.assertEqual(result["amount"], 480)

    def test_nothing_found(self) -> None:
        result = postprocess("", [], today=TODAY)
        self.assertEqual(result, {"rawText": "", "date": None, "amount": None, "confidence": 0.0})

    def test_region_amounts_use_median(self) -> None:
        result = postprocess(
            "合計 ¥1,200",
            [RoiText("¥1,000", RoiType.AMOUNT, 0.8), RoiText("¥1,100", RoiType.AMOUNT, 0.8)],
            today=TODAY,
        )
        self.assertEqual(result["amount"], 1100)


if __name__ == "__main__":
    unittest.main()
