"""
Tests for core.mixer.fx_protocol — FX command/response line grammar.

Pure functions only, no files involved.
"""

import logging

import pytest

from core.mixer.fx_protocol import (
    ACCEPTED_TAGS,
    build_all_send_values,
    build_fx_values,
    build_result,
    format_param_write,
    format_request,
    has_complete_line,
    parse_response,
    parse_response_line,
)
from core.mixer.types import (
    BypassCommand,
    EnabledRecord,
    FxCommand,
    FxRequest,
    ParamRecord,
    RequestKind,
    ResponseTag,
    SendRecord,
)

# ---------------------------------------------------------------------------
# Command formatting
# ---------------------------------------------------------------------------


class TestFormatParamWrite:
    def test_fractional_value(self) -> None:
        assert format_param_write(FxCommand(3, 1, 4, 0.25)) == "3,1,4,0.25\n"

    def test_integral_float_has_no_decimal_point(self) -> None:
        assert format_param_write(FxCommand(3, 1, 4, 1.0)) == "3,1,4,1\n"

    def test_zero(self) -> None:
        assert format_param_write(FxCommand(0, 0, 0, 0.0)) == "0,0,0,0\n"

    def test_int_value_accepted(self) -> None:
        assert format_param_write(FxCommand(2, 0, 7, 1)) == "2,0,7,1\n"


class TestFormatRequest:
    def test_full_read(self) -> None:
        assert format_request(FxRequest.full(3)) == "R,3\n"

    def test_output_read(self) -> None:
        assert format_request(FxRequest.output(3)) == "O,3\n"

    def test_bypass(self) -> None:
        assert format_request(FxRequest.bypass(BypassCommand(3, 1))) == "B,3,1\n"

    def test_all_sends(self) -> None:
        assert format_request(FxRequest.all_sends()) == "SENDS\n"

    def test_track_index_passed_through_verbatim(self) -> None:
        assert format_request(FxRequest.full(0)) == "R,0\n"

    def test_missing_track_raises(self) -> None:
        with pytest.raises(ValueError, match="requires track_idx"):
            format_request(FxRequest(RequestKind.FULL))

    def test_bypass_missing_fx_raises(self) -> None:
        with pytest.raises(ValueError, match="requires fx_idx"):
            format_request(FxRequest(RequestKind.BYPASS, track_idx=1))


# ---------------------------------------------------------------------------
# Readiness
# ---------------------------------------------------------------------------


class TestHasCompleteLine:
    def test_empty(self) -> None:
        assert has_complete_line("") is False

    def test_partial_line_not_ready(self) -> None:
        assert has_complete_line("P,1,2,3,0.") is False

    def test_terminated_line_ready(self) -> None:
        assert has_complete_line("E,1,2,0\n") is True

    def test_blank_lines_not_ready(self) -> None:
        assert has_complete_line("\n\n") is False

    def test_complete_line_followed_by_partial(self) -> None:
        assert has_complete_line("E,1,2,0\nP,1,") is True


# ---------------------------------------------------------------------------
# Line parsing
# ---------------------------------------------------------------------------


class TestParseResponseLine:
    def test_param_line(self) -> None:
        record = parse_response_line("P,1,2,3,0.5")
        assert record == ParamRecord(raw_track="1", fx_idx=2, param_idx=3, value=0.5)

    def test_enabled_line(self) -> None:
        record = parse_response_line("E,1,2,0")
        assert record == EnabledRecord(raw_track="1", fx_idx=2, raw_flag="0")
        assert record.bypassed is True

    def test_enabled_flag_one_is_active(self) -> None:
        assert parse_response_line("E,1,2,1").bypassed is False

    def test_enabled_unexpected_flag_is_active(self) -> None:
        assert parse_response_line("E,1,2,yes").bypassed is False

    def test_send_line(self) -> None:
        assert parse_response_line("S,4,1,0.75") == SendRecord(4, 1, 0.75)

    def test_surrounding_whitespace_stripped(self) -> None:
        assert parse_response_line("  S,4,1,0.75\r\n") == SendRecord(4, 1, 0.75)

    def test_blank_line(self) -> None:
        assert parse_response_line("") is None

    def test_unknown_tag(self) -> None:
        assert parse_response_line("X,1,2,3") is None

    @pytest.mark.parametrize(
        "line",
        ["P,1,2", "P,1,a,3,0.5", "P,1,2,3,loud", "E,1", "S,one,0,0.5", "S,1,0"],
    )
    def test_malformed_lines_skipped(self, line: str) -> None:
        assert parse_response_line(line) is None

    @pytest.mark.parametrize("line", ["P,1,2,3,nan", "P,1,2,3,inf", "S,1,0,-inf", "S,1,0,NaN"])
    def test_non_finite_values_skipped(self, line: str) -> None:
        assert parse_response_line(line) is None

    def test_track_field_kept_unparsed(self) -> None:
        assert parse_response_line("P,master,0,1,0.5").raw_track == "master"
        assert parse_response_line("E,-1,0,1").raw_track == "-1"

    def test_malformed_line_logged_at_debug(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.DEBUG, logger="core.mixer.fx_protocol"):
            parse_response_line("P,1,2")
        assert "malformed" in caplog.text


class TestParseResponse:
    def test_accepted_tags_per_kind(self) -> None:
        assert ACCEPTED_TAGS[RequestKind.BYPASS] == {ResponseTag.ENABLED}
        assert ACCEPTED_TAGS[RequestKind.FULL] == {ResponseTag.PARAM, ResponseTag.ENABLED}
        assert ACCEPTED_TAGS[RequestKind.OUTPUT] == {ResponseTag.PARAM, ResponseTag.ENABLED}
        assert ACCEPTED_TAGS[RequestKind.SENDS] == {ResponseTag.SEND}

    def test_full_read_keeps_params_and_enabled(self) -> None:
        records = parse_response("P,1,2,3,0.5\nE,1,2,0\nS,1,0,0.8\n", RequestKind.FULL)
        assert [type(r) for r in records] == [ParamRecord, EnabledRecord]

    def test_bypass_ignores_param_lines(self) -> None:
        records = parse_response("P,1,2,3,0.5\nE,1,2,1\n", RequestKind.BYPASS)
        assert records == [EnabledRecord("1", 2, "1")]

    def test_sends_ignores_fx_lines(self) -> None:
        records = parse_response("E,1,2,0\nS,1,0,0.8\n", RequestKind.SENDS)
        assert records == [SendRecord(1, 0, 0.8)]

    def test_blank_and_malformed_lines_dropped(self) -> None:
        content = "\nP,1,2,3,0.5\n\nP,broken\n  E,1,2,0  \n"
        records = parse_response(content, RequestKind.FULL)
        assert len(records) == 2

    def test_unterminated_trailing_fragment_ignored(self) -> None:
        records = parse_response("P,1,2,3,0.5\nP,1,2,4,0.12", RequestKind.FULL)
        assert records == [ParamRecord("1", 2, 3, 0.5)]

    def test_no_terminated_line_gives_nothing(self) -> None:
        assert parse_response("S,1,0,0.8", RequestKind.SENDS) == []

    def test_nan_line_dropped_rest_kept(self) -> None:
        records = parse_response("P,1,2,3,nan\nP,1,2,4,0.25\n", RequestKind.FULL)
        assert records == [ParamRecord("1", 2, 4, 0.25)]

    def test_crlf_line_endings(self) -> None:
        records = parse_response("S,1,0,0.8\r\nS,1,1,0.2\r\n", RequestKind.SENDS)
        assert records == [SendRecord(1, 0, 0.8), SendRecord(1, 1, 0.2)]


# ---------------------------------------------------------------------------
# Result building
# ---------------------------------------------------------------------------


class TestBuildFxValues:
    def test_single_param_and_bypass(self) -> None:
        result = build_result(FxRequest.full(1), "P,1,2,3,0.5\nE,1,2,0\n").to_dict()
        assert result == {
            "type": "fxValues",
            "trackIdx": 1,
            "params": [{"fxIdx": 2, "paramIdx": 3, "value": 0.5}],
            "bypassed": {2: True},
        }

    def test_params_keep_response_order(self) -> None:
        records = parse_response("P,1,0,2,0.2\nP,1,0,1,0.1\nP,1,1,0,1\n", RequestKind.FULL)
        values = build_fx_values(1, records)
        assert [(p.fx_idx, p.param_idx) for p in values.params] == [(0, 2), (0, 1), (1, 0)]

    def test_later_enabled_line_overwrites(self) -> None:
        records = parse_response("E,1,2,0\nE,1,2,1\n", RequestKind.FULL)
        assert build_fx_values(1, records).bypassed == {2: False}

    def test_result_track_comes_from_request(self) -> None:
        result = build_result(FxRequest.output(7), "P,99,0,0,0.5\n").to_dict()
        assert result["trackIdx"] == 7

    def test_bypass_result_has_no_params(self) -> None:
        result = build_result(
            FxRequest.bypass(BypassCommand(3, 1)), "P,3,1,0,0.5\nE,3,1,0\n"
        ).to_dict()
        assert result["params"] == []
        assert result["bypassed"] == {1: True}

    def test_no_matching_lines_gives_empty_result(self) -> None:
        result = build_result(FxRequest.full(1), "X,garbage\n").to_dict()
        assert result["params"] == [] and result["bypassed"] == {}


class TestBuildAllSendValues:
    def test_grouped_by_track(self) -> None:
        result = build_result(
            FxRequest.all_sends(), "S,1,0,0.8\nS,1,1,0.2\nS,2,0,1.0\n"
        ).to_dict()
        assert result == {
            "type": "allSendValues",
            "tracks": {
                1: [{"sendIdx": 0, "vol": 0.8}, {"sendIdx": 1, "vol": 0.2}],
                2: [{"sendIdx": 0, "vol": 1.0}],
            },
        }

    def test_interleaved_tracks_keep_order_within_track(self) -> None:
        records = parse_response("S,2,0,0.1\nS,1,0,0.5\nS,2,1,0.3\n", RequestKind.SENDS)
        grouped = build_all_send_values(records).tracks
        assert [s.send_idx for s in grouped[2]] == [0, 1]
        assert list(grouped) == [2, 1]

    def test_empty(self) -> None:
        assert build_all_send_values([]).to_dict() == {"type": "allSendValues", "tracks": {}}
