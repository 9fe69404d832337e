import pandas as pd
import pandera.pandas as pa
import pytest

from revseg.validation import (
    ensure_non_negative,
    validate_accounts,
    validate_deals,
    validate_snoozes,
)


def test_valid_deals_pass_and_coerce():
    df = pd.DataFrame({"id": ["d1", "d2"], "account_id": ["a1", "a1"], "total_price": ["10", None]})
    out = validate_deals(df)
    assert out["total_price"].tolist()[0] == 10.0


def test_duplicate_deal_ids_warn(capsys):
    df = pd.DataFrame({"id": ["d1", "d1"], "account_id": ["a1", "a2"]})
    out = validate_deals(df)

    assert out is df
    assert "[WARN] Deals validation failed" in capsys.readouterr().out


def test_strict_mode_raises():
    df = pd.DataFrame({"id": ["d1", "d1"], "account_id": ["a1", "a2"]})
    with pytest.raises(pa.errors.SchemaErrors):
        validate_deals(df, strict=True)


def test_icp_score_out_of_range_warns(capsys):
    df = pd.DataFrame({"id": ["a1"], "organization_score": [140]})
    validate_accounts(df)
    assert "[WARN] Accounts validation failed" in capsys.readouterr().out


def test_empty_snoozes_skip_validation():
    df = pd.DataFrame()
    assert validate_snoozes(df) is df


def test_ensure_non_negative():
    df = pd.DataFrame({"id": [1], "total_price": [-5]})
    assert ensure_non_negative(df, ["total_price"]) == (False, ["total_price"])
