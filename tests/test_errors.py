"""
Unit tests for errors.py (taxonomy, annotation, user-friendly formatting).

Run with: pytest tests/test_errors.py -v
"""

import json
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / "scripts"))

from errors import (  # noqa: E402
    AuctionEnded,
    BidTooLow,
    ContractExecutionError,
    DexError,
    EncodingError,
    InvalidDepositConfiguration,
    ListingDecodeError,
    ListingError,
    MethodUnavailable,
    PoolNotFound,
    ProtocolError,
    RpcError,
    SeqnoTimeout,
    SubmitFailed,
    TonAgentError,
    UnsupportedOperation,
    ValidationError,
    WrongListingKind,
    format_error,
    operation,
    translate_execution_error,
)


class TestTaxonomy:
    @pytest.mark.parametrize(
        "cls,parent",
        [
            (SeqnoTimeout, ProtocolError),
            (RpcError, ProtocolError),
            (MethodUnavailable, RpcError),
            (SubmitFailed, RpcError),
            (WrongListingKind, ListingError),
            (ListingDecodeError, ListingError),
            (AuctionEnded, ListingError),
            (BidTooLow, ListingError),
            (PoolNotFound, DexError),
            (InvalidDepositConfiguration, DexError),
            (UnsupportedOperation, DexError),
            (EncodingError, TonAgentError),
            (ValidationError, TonAgentError),
            (ContractExecutionError, TonAgentError),
        ],
    )
    def test_hierarchy(self, cls, parent):
        assert issubclass(cls, parent)

    def test_only_transport_errors_retry(self):
        assert RpcError("x").retryable is True
        assert SubmitFailed("x").retryable is True
        assert MethodUnavailable("x").retryable is False
        assert SeqnoTimeout("x").retryable is False
        assert BidTooLow("x").retryable is False
        assert PoolNotFound("x").retryable is False


class TestContext:
    def test_annotate_keeps_known_fields(self):
        error = ValidationError("bad", amount=1)
        error.annotate(amount=2, operation="mint", skipped=None)

        assert error.context == {"amount": 1, "operation": "mint"}

    def test_str_includes_context(self):
        assert str(BidTooLow("Bid too low", min_bid=100)) == "Bid too low (min_bid=100)"
        assert str(BidTooLow("Bid too low")) == "Bid too low"

    def test_operation_annotates_and_reraises(self):
        with pytest.raises(PoolNotFound) as exc:
            with operation("deposit", dex="dedust"):
                raise PoolNotFound("Pool is not ready")
        assert exc.value.context == {"operation": "deposit", "dex": "dedust"}

    def test_operation_ignores_foreign_errors(self):
        with pytest.raises(KeyError):
            with operation("deposit"):
                raise KeyError("x")

    def test_nested_operations_keep_innermost(self):
        with pytest.raises(SeqnoTimeout) as exc:
            with operation("batch_transfer"):
                with operation("transfer_ton", amount=5):
                    raise SeqnoTimeout("Seqno did not advance past 3 after 10 polls")
        assert exc.value.context["operation"] == "transfer_ton"

    def test_to_dict_is_json_serializable(self):
        error = RpcError("boom", status_code=500, addresses=("a", "b"), raw=object())
        data = error.to_dict()

        json.dumps(data)
        assert data["error_type"] == "RpcError"
        assert data["context"]["addresses"] == ["a", "b"]


class TestTranslateExecutionError:
    @pytest.mark.parametrize("exit_code", [-14, -13, 7, 9, 11, 37, 73, 74, 705, 706, 709])
    def test_known_exit_codes(self, exit_code):
        error = translate_execution_error("exit code", exit_code=exit_code)
        assert error.exit_code == exit_code
        assert not error.message.startswith("Contract execution failed")

    def test_signature_in_raw_text(self):
        error = translate_execution_error({"error": "Unable to execute get method"})
        assert "pool or contract may not exist" in error.message
        assert error.context["cause"] == "Unable to execute get method"

    def test_unknown_code(self):
        error = translate_execution_error("vm error", exit_code=1234, method="get_pool")
        assert error.message == "Contract execution failed (exit code 1234)"
        assert error.context["method"] == "get_pool"


class TestFormatError:
    def test_plain_string(self):
        assert format_error("something broke") == {
            "success": False,
            "error": "something broke",
        }

    def test_pattern_match(self):
        result = format_error("Request timeout")
        assert result["error"] == "Request timeout"
        assert result["reasons"]
        assert result["raw_error"] == "Request timeout"

    def test_typed_error(self):
        error = ContractExecutionError("Out of gas", exit_code=-14, operation="mint")
        result = format_error(error, context={"wallet": "main"})

        assert result["error_type"] == "ContractExecutionError"
        assert result["exit_code"] == -14
        assert result["context"] == {"operation": "mint", "wallet": "main"}

    def test_seqno_timeout_message(self):
        result = format_error(SeqnoTimeout("Seqno did not advance past 3 after 10 polls"))
        assert result["error"] == "Transaction was not confirmed in time"
        assert "may still land" in result["suggestion"]

    def test_rejected_submit(self):
        result = format_error(SubmitFailed("Node rejected the message: duplicate"))
        assert result["error"] == "Transaction was rejected by the network"
