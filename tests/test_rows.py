import pytest

from genbatch.exceptions import RowParseError
from genbatch.rows import BulkRow, normalize_header, parse_rows, serialize_rows


def test_parse_rows_maps_aliases_and_extra_columns():
    text = (
        "ID,Prompt,imageUrl,aspect_ratio,seed,fallback,note,style\n"
        "job-1,a dog surfing,https://img.example.com/dog.png,16:9,42,v1,first take,anime\n"
    )
    [row] = parse_rows(text)
    assert row.id == "job-1"
    assert row.prompt == "a dog surfing"
    assert row.image_url == "https://img.example.com/dog.png"
    assert row.ratio == "16:9"
    assert row.seed == 42
    assert row.extra == {"fallback_model": "v1", "note": "first take", "style": "anime"}


def test_parse_rows_names_rows_without_id_and_skips_blank_lines():
    text = "\ufeffprompt,ratio\nfirst prompt,\n\n,\nsecond prompt,1:1\n"
    rows = parse_rows(text)
    assert [row.id for row in rows] == ["row_1", "row_2"]
    assert rows[0].ratio is None
    assert rows[1].ratio == "1:1"


def test_parse_rows_header_only_yields_nothing():
    assert parse_rows("id,prompt\n") == []
    assert parse_rows("") == []


def test_parse_rows_rejects_invalid_seed():
    with pytest.raises(RowParseError, match="Row 1"):
        parse_rows("id,prompt,seed\njob-1,a prompt,forty-two\n")


def test_normalize_header():
    assert normalize_header(" Callback ") == "callback_url"
    assert normalize_header("unknown") is None


def test_serialize_rows_writes_fixed_columns():
    text = serialize_rows(
        [
            BulkRow(
                id="job-1",
                prompt="a cat, sleeping",
                seed=7,
                extra={"note": "keep", "style": "ignored"},
            )
        ]
    )
    lines = text.splitlines()
    assert lines[0] == (
        "id,prompt,image_url,ratio,seed,watermark,callback_url,translate,fallback_model,note"
    )
    assert lines[1] == 'job-1,"a cat, sleeping",,,7,,,,,keep'
    [row] = parse_rows(text)
    assert row.prompt == "a cat, sleeping"
    assert row.seed == 7
