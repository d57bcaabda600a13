from __future__ import annotations

import pytest

from sheet_sync.services.validator import RowValidator


@pytest.fixture()
def validator(sync_config) -> RowValidator:
    return RowValidator(sync_config)


def test_full_row_is_valid(validator, seller_row):
    result = validator.validate(seller_row)
    assert result.is_valid
    assert result.errors == []
    assert result.warnings == []


def test_missing_key_is_error(validator, seller_row):
    seller_row["売主番号"] = ""
    result = validator.validate(seller_row)
    assert not result.is_valid
    assert result.errors == ["必須フィールド「売主番号」が空です"]


def test_empty_name_never_fails(validator, seller_row):
    seller_row["名前(漢字のみ）"] = ""
    assert validator.validate(seller_row).is_valid


def test_bad_phone_is_error(validator, seller_row):
    seller_row["電話番号\nハイフン不要"] = "090-1234-567x"
    result = validator.validate(seller_row)
    assert not result.is_valid
    assert any("電話番号" in e for e in result.errors)


@pytest.mark.parametrize("phone", ["090-1234-5678", "(097) 555 1234", "09012345678"])
def test_permissive_phone_pattern(validator, seller_row, phone):
    seller_row["電話番号\nハイフン不要"] = phone
    assert validator.validate(seller_row).is_valid


def test_non_numeric_amount_is_error(validator, seller_row):
    seller_row["査定額1（自動計算）v"] = "五百"
    seller_row["査定額2"] = "abc"
    result = validator.validate(seller_row)
    assert len(result.errors) == 2


def test_errors_are_collected_not_fail_fast(validator, seller_row):
    seller_row["売主番号"] = ""
    seller_row["電話番号\nハイフン不要"] = "tel?"
    seller_row["査定額1（自動計算）v"] = "x"
    assert len(validator.validate(seller_row).errors) == 3


def test_malformed_email_is_warning_only(validator, seller_row):
    seller_row["メールアドレス"] = "taro.example.com"
    result = validator.validate(seller_row)
    assert result.is_valid
    assert len(result.warnings) == 1
    assert "メールアドレス" in result.warnings[0]


def test_placeholder_email_is_silent(validator, seller_row):
    seller_row["メールアドレス"] = "なし"
    result = validator.validate(seller_row)
    assert result.is_valid
    assert result.warnings == []


def test_bare_month_day_is_warned(validator, seller_row):
    seller_row["次電日"] = "12/30"
    result = validator.validate(seller_row)
    assert result.is_valid
    assert len(result.warnings) == 1
    assert "assume_future" in result.warnings[0]


def test_unparseable_date_is_warned(validator, seller_row):
    seller_row["反響日付"] = "先週"
    result = validator.validate(seller_row)
    assert result.is_valid
    assert any("反響日付" in w for w in result.warnings)


def test_date_serial_is_fine(validator, seller_row):
    seller_row["反響日付"] = 45292
    assert validator.validate(seller_row).warnings == []
