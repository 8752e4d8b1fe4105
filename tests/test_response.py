"""Tests for ResponseDecoder and the per-operation success rules."""

import json

import pytest

from marketo_rest_client.exceptions import ApiError, DecodeError
from marketo_rest_client.response import Response, ResponseDecoder
from marketo_rest_client.transport import RawResponse


def raw(payload, status=200):
    body = payload if isinstance(payload, bytes) else json.dumps(payload).encode("utf-8")
    return RawResponse(status=status, body=body)


@pytest.fixture
def decoder():
    return ResponseDecoder()


# =========================================================================
# Envelope parsing
# =========================================================================


class TestDecode:
    def test_invalid_json(self, decoder):
        with pytest.raises(DecodeError, match="not valid JSON"):
            decoder.decode("getLead", raw(b"<html>502 Bad Gateway</html>", status=502))

    def test_missing_success_field(self, decoder):
        with pytest.raises(DecodeError, match="success"):
            decoder.decode("getLead", raw({"requestId": "x", "result": []}))

    def test_non_object_body(self, decoder):
        with pytest.raises(DecodeError):
            decoder.decode("getLead", raw([1, 2, 3]))

    def test_envelope_accessors(self, decoder):
        response = decoder.decode(
            "getLeadsByFilterType",
            raw(
                {
                    "requestId": "e42b#14272d07d78",
                    "success": True,
                    "nextPageToken": "GIYDAOBNGEYS2MBWKQ",
                    "moreResult": True,
                    "warnings": ["slow"],
                    "result": [{"id": 1}, {"id": 2}],
                }
            ),
        )

        assert isinstance(response, Response)
        assert response.status == 200
        assert response.get_request_id() == "e42b#14272d07d78"
        assert response.get_next_page_token() == "GIYDAOBNGEYS2MBWKQ"
        assert response.more_result() is True
        assert response.get_warnings() == ["slow"]
        assert response.get_leads() == [{"id": 1}, {"id": 2}]
        assert response.get_error() is None


# =========================================================================
# Default rule
# =========================================================================


class TestDefaultRule:
    def test_vendor_error_is_returned_unmodified(self, decoder):
        error = {"code": "601", "message": "Invalid token"}
        response = decoder.decode("getLeadsByFilterType", raw({"success": False, "errors": [error]}))

        assert response.is_success() is False
        assert response.get_error() == error
        assert response.get_errors() == [error]

    def test_success_with_empty_result_is_success(self, decoder):
        response = decoder.decode("getLeadsByFilterType", raw({"success": True, "result": []}))

        assert response.is_success() is True
        assert response.get_leads() == []

    def test_success_must_be_literally_true(self, decoder):
        response = decoder.decode("getLists", raw({"success": "true", "result": [{"id": 1}]}))
        assert response.is_success() is False


# =========================================================================
# Not-found rules
# =========================================================================


class TestCustomObjectsRule:
    def test_empty_result_is_not_found(self, decoder):
        response = decoder.decode("getCustomObjectsByFilterType", raw({"success": True, "result": []}))

        assert response.is_success() is False
        assert response.get_error() == {"code": "", "message": "Custom Objects not found"}
        assert response.get_custom_objects() is None

    def test_missing_result_is_not_found(self, decoder):
        response = decoder.decode("getCustomObjectsByFilterType", raw({"success": True}))
        assert response.is_success() is False

    def test_non_empty_result(self, decoder):
        response = decoder.decode("getCustomObjectsByFilterType", raw({"success": True, "result": [{"id": 1}]}))

        assert response.is_success() is True
        assert response.get_error() is None
        assert response.get_custom_objects() == [{"id": 1}]

    def test_vendor_error_wins_over_synthesized_error(self, decoder):
        error = {"code": "1003", "message": "Invalid object name"}
        response = decoder.decode("getCustomObjectsByFilterType", raw({"success": False, "errors": [error]}))

        assert response.get_error() == error


class TestLookupRules:
    @pytest.mark.parametrize(
        "operation, message",
        [
            ("getLead", "Lead not found"),
            ("getLeadByFilterType", "Lead not found"),
            ("getList", "List not found"),
            ("getCampaign", "Campaign not found"),
            ("getCompaniesByFilterType", "Companies not found"),
            ("getOpportunitiesByFilterType", "Opportunities not found"),
        ],
    )
    def test_empty_result_reports_not_found(self, decoder, operation, message):
        response = decoder.decode(operation, raw({"success": True, "result": []}))

        assert response.is_success() is False
        assert response.get_error() == {"code": "", "message": message}

    def test_get_lead_returns_first_record(self, decoder):
        response = decoder.decode("getLead", raw({"success": True, "result": [{"id": 7, "email": "a@b.c"}]}))
        assert response.get_lead() == {"id": 7, "email": "a@b.c"}

    def test_get_lead_when_not_found(self, decoder):
        response = decoder.decode("getLead", raw({"success": True, "result": []}))
        assert response.get_lead() is None

    def test_custom_rules_can_be_supplied(self):
        from marketo_rest_client.response import InterpretationRule

        decoder = ResponseDecoder({"getThing": InterpretationRule(True, "Thing not found")})
        response = decoder.decode("getThing", raw({"success": True, "result": []}))

        assert response.get_error() == {"code": "", "message": "Thing not found"}
        # Operations without a registered rule fall back to the default.
        assert decoder.decode("getLead", raw({"success": True, "result": []})).is_success() is True


# =========================================================================
# Result accessors
# =========================================================================


class TestAccessors:
    def test_is_member_of_list_single(self, decoder):
        response = decoder.decode("isMemberOfList", raw({"success": True, "result": [{"id": 1, "status": "memberof"}]}))
        assert response.is_member_of_list() is True
        assert response.is_member_of_list(1) is True
        assert response.is_member_of_list(2) is None

    def test_is_member_of_list_many(self, decoder):
        response = decoder.decode(
            "isMemberOfList",
            raw(
                {
                    "success": True,
                    "result": [{"id": 1, "status": "memberof"}, {"id": 2, "status": "notmemberof"}],
                }
            ),
        )
        assert response.is_member_of_list() == {1: True, 2: False}
        assert response.is_member_of_list("2") is False

    def test_is_member_of_list_on_failure(self, decoder):
        response = decoder.decode("isMemberOfList", raw({"success": False, "errors": []}))
        assert response.is_member_of_list(1) is None

    def test_status_and_id_of_single_lead(self, decoder):
        response = decoder.decode(
            "createOrUpdateLeads", raw({"success": True, "result": [{"id": 50, "status": "created"}]})
        )
        assert response.get_id() == 50
        assert response.get_status() == "created"

    def test_status_by_lead_id(self, decoder):
        response = decoder.decode(
            "addLeadsToList",
            raw({"success": True, "result": [{"id": 1, "status": "added"}, {"id": 2, "status": "skipped"}]}),
        )
        assert response.get_status(2) == "skipped"
        assert response.get_status() is None

    def test_batch_id(self, decoder):
        response = decoder.decode(
            "importLeadsCsv", raw({"success": True, "result": [{"batchId": 1022, "status": "Importing"}]})
        )
        assert response.get_batch_id() == 1022

    def test_non_object_result_items_are_ignored(self, decoder):
        response = decoder.decode("addLeadsToList", raw({"success": True, "result": ["oops", 7]}))
        assert response.get_status(1) is None
        assert response.get_id() is None
        assert response.get_batch_id() is None
        assert response.is_member_of_list() == {}

    def test_non_object_items_do_not_hide_lead_status(self, decoder):
        response = decoder.decode("addLeadsToList", raw({"success": True, "result": ["oops", {"id": 3, "status": "added"}]}))
        assert response.get_status(3) == "added"
        assert response.get_status() == "added"


# =========================================================================
# raise_for_error
# =========================================================================


class TestRaiseForError:
    def test_successful_response_does_not_raise(self, decoder):
        decoder.decode("getLeadPartitions", raw({"success": True, "result": []})).raise_for_error()

    def test_vendor_errors_are_carried(self, decoder):
        errors = [{"code": "1004", "message": "Lead not found"}, {"code": "1005", "message": "Other"}]
        response = decoder.decode("getLeadsByFilterType", raw({"requestId": "r1", "success": False, "errors": errors}))

        with pytest.raises(ApiError) as excinfo:
            response.raise_for_error()

        assert excinfo.value.errors == errors
        assert excinfo.value.code == "1004"
        assert excinfo.value.request_id == "r1"

    def test_synthesized_error(self, decoder):
        response = decoder.decode("getCustomObjectsByFilterType", raw({"success": True, "result": []}))

        with pytest.raises(ApiError, match="Custom Objects not found") as excinfo:
            response.raise_for_error()
        assert excinfo.value.code == ""
