from whatsapp_agent.utils import extract_json_block, loads_or_none, mask_phone, truncate_text


class TestMaskPhone:
    def test_keeps_head_and_tail(self):
        assert mask_phone("905551112233") == "90********33"

    def test_short_numbers_fully_masked(self):
        assert mask_phone("1234") == "****"

    def test_minimum_two_asterisks(self):
        assert mask_phone("12345") == "12**45"


class TestExtractJsonBlock:
    def test_strips_surrounding_text(self):
        assert extract_json_block('prefix {"a": 1} suffix') == '{"a": 1}'

    def test_missing_braces(self):
        assert extract_json_block("no json here") is None
        assert extract_json_block("} reversed {") is None
        assert extract_json_block("") is None


class TestLoadsOrNone:
    def test_valid_and_invalid(self):
        assert loads_or_none('{"a": 1}') == {"a": 1}
        assert loads_or_none("{broken") is None


def test_truncate_text():
    assert truncate_text("x" * 300) == "x" * 200
