"""
Unit tests for transaction.py (seqno transaction protocol).

Run with: pytest tests/test_transaction.py -v
"""

import sys
import threading
from pathlib import Path

import pytest
from tonsdk.boc import Cell
from tonsdk.crypto import mnemonic_new
from tonsdk.utils import Address

sys.path.insert(0, str(Path(__file__).parent.parent / "scripts"))

import transaction  # noqa: E402
from cells import comment_body  # noqa: E402
from conftest import RECIPIENT, WALLET, fake_build_transfer  # noqa: E402
from errors import (  # noqa: E402
    EncodingError,
    MethodUnavailable,
    SeqnoTimeout,
    ValidationError,
    format_error,
)
from rpc import TonContext  # noqa: E402
from transaction import (  # noqa: E402
    Account,
    await_confirmation,
    internal_message,
    poll_until,
    send_and_confirm,
    send_message,
    submit,
)


def one_message(value=1_000_000):
    return [internal_message(RECIPIENT, value, comment_body("hi"))]


# =============================================================================
# Account / messages
# =============================================================================


class TestAccount:
    def test_equality_ignores_address_format(self):
        friendly = Address(WALLET).to_string(True, True, True)
        assert Account(WALLET) == Account(friendly)
        assert len({Account(WALLET), Account(friendly)}) == 1

    def test_key_is_raw(self):
        assert Account(WALLET).key == WALLET
        assert Account(WALLET).workchain == 0

    def test_wallet_record_without_mnemonic(self):
        with pytest.raises(ValidationError):
            Account.from_wallet_data({"label": "watch-only", "address": WALLET})


class TestMessages:
    def test_negative_value_raises(self):
        with pytest.raises(EncodingError):
            internal_message(RECIPIENT, -1)

    def test_float_value_raises(self):
        with pytest.raises(EncodingError):
            internal_message(RECIPIENT, 1.5)

    def test_invalid_address_raises(self):
        with pytest.raises(EncodingError, match="Invalid address"):
            internal_message("not-an-address", 1)


# =============================================================================
# build_transfer
# =============================================================================


class TestBuildTransfer:
    def test_more_than_four_messages_raises(self):
        account = Account(WALLET, wallet=object())
        with pytest.raises(EncodingError, match="at most 4"):
            transaction.build_transfer(account, one_message() * 5, seqno=0)

    def test_no_messages_raises(self):
        with pytest.raises(EncodingError):
            transaction.build_transfer(Account(WALLET, wallet=object()), [], seqno=0)

    def test_account_without_keys_raises(self):
        with pytest.raises(ValidationError, match="signing keys"):
            transaction.build_transfer(Account(WALLET), one_message(), seqno=0)

    @pytest.mark.slow
    def test_signed_transfer_hash(self):
        account = Account.from_mnemonic(mnemonic_new())
        result = transaction.build_transfer(account, one_message() * 4, seqno=3)

        assert result["seqno"] == 3
        assert Cell.one_from_boc(result["boc"]).bytes_hash().hex() == result["hash"]


# =============================================================================
# Submit / confirm
# =============================================================================


class TestSendAndConfirm:
    def test_confirmed_receipt(self, ctx, ledger, account):
        receipt = send_and_confirm(ctx, account, one_message())

        assert receipt["success"] is True
        assert receipt["seqno"] == 0
        assert receipt["new_seqno"] == 1
        assert receipt["hash_verified"] is True
        assert ledger.sent[0]["messages"][0]["to"] == RECIPIENT
        assert ctx.get_pending(account.address) is None

    def test_uses_current_seqno(self, ctx, ledger, account):
        ledger.seqnos[WALLET] = 41
        assert send_message(ctx, account, RECIPIENT, 5)["seqno"] == 41
        assert ledger.sent[0]["seqno"] == 41

    def test_hash_mismatch_is_reported(self, ctx, ledger, account):
        def foreign_transaction(transfer):
            ledger.last_tx[WALLET] = {"hash": "aa", "in_msg": {"hash": "bb"}}

        ledger.on_send = foreign_transaction
        receipt = send_and_confirm(ctx, account, one_message())
        assert receipt["success"] is True
        assert receipt["hash_verified"] is False

    def test_hash_check_can_be_disabled(self, ledger, account, config):
        config["confirm"]["verify_hash"] = False
        ctx = TonContext(ledger, config, sleep=lambda s: None)
        assert "hash_verified" not in send_and_confirm(ctx, account, one_message())

    def test_timeout(self, ctx, ledger, account):
        ledger.auto_confirm = False
        with pytest.raises(SeqnoTimeout) as exc:
            send_and_confirm(ctx, account, one_message())

        assert exc.value.context["seqno"] == 0
        assert format_error(exc.value)["error"] == "Transaction was not confirmed in time"
        # the transfer may still land: seqno stays reserved
        assert ctx.get_pending(account.address) == 0

    def test_timeout_argument_limits_polls(self, ledger, account, config):
        config["confirm"]["poll_interval"] = 2
        config["confirm"]["max_polls"] = 10
        sleeps = []
        ctx = TonContext(ledger, config, sleep=sleeps.append)
        ledger.auto_confirm = False

        handle = submit(ctx, account, one_message())
        with pytest.raises(SeqnoTimeout, match="after 2 polls"):
            await_confirmation(ctx, handle, timeout=5)
        assert sleeps == [2, 2]

    def test_transient_errors_consume_attempts(self, ctx, ledger, account):
        def flaky(transfer):
            ledger.seqno_errors = 2

        ledger.on_send = flaky
        receipt = send_and_confirm(ctx, account, one_message())
        assert receipt["polls"] == 3
        assert receipt["success"] is True

    def test_too_many_transient_errors_time_out(self, ctx, ledger, account):
        def flaky(transfer):
            ledger.seqno_errors = 3

        ledger.on_send = flaky
        with pytest.raises(SeqnoTimeout):
            send_and_confirm(ctx, account, one_message())

    def test_too_many_messages_nothing_sent(self, ctx, ledger, account):
        with pytest.raises(EncodingError):
            send_and_confirm(ctx, account, one_message() * 5)
        assert ledger.sent == []


# =============================================================================
# Seqno serialization
# =============================================================================


class TestSeqnoSerialization:
    def test_concurrent_transfers_get_distinct_seqnos(self, ctx, ledger, account):
        errors = []

        def worker():
            try:
                send_and_confirm(ctx, account, one_message())
            except Exception as e:  # noqa: BLE001
                errors.append(e)

        threads = [threading.Thread(target=worker) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert sorted(t["seqno"] for t in ledger.sent) == [0, 1]

    def test_unconfirmed_seqno_is_never_signed_twice(
        self, ctx, ledger, account, monkeypatch
    ):
        # node keeps both messages like a mempool would
        ledger.auto_confirm = False
        ledger.reject_reused_seqno = False
        built = []

        def counting_build(*args, **kwargs):
            transfer = fake_build_transfer(*args, **kwargs)
            built.append(transfer["seqno"])
            return transfer

        monkeypatch.setattr(transaction, "build_transfer", counting_build)
        submit(ctx, account, one_message())

        with pytest.raises(SeqnoTimeout, match="past 0") as exc:
            submit(ctx, account, one_message())

        assert built == [0]
        assert len(ledger.sent) == 1
        assert exc.value.context["seqno"] == 0
        assert ctx.get_pending(account.address) == 0
        assert format_error(exc.value)["error"] == "Transaction was not confirmed in time"

    def test_blocked_account_resumes_after_seqno_advances(self, ctx, ledger, account):
        ledger.auto_confirm = False
        submit(ctx, account, one_message())
        with pytest.raises(SeqnoTimeout):
            submit(ctx, account, one_message())

        ledger.confirm(WALLET)

        assert submit(ctx, account, one_message())["seqno"] == 1
        assert [t["seqno"] for t in ledger.sent] == [0, 1]

    def test_waits_for_pending_transfer(self, ctx, ledger, account):
        ledger.auto_confirm = False
        submit(ctx, account, one_message())
        # confirmed while the second transfer waits
        ledger.confirm(WALLET)

        handle = submit(ctx, account, one_message())
        assert handle["seqno"] == 1
        assert [t["seqno"] for t in ledger.sent] == [0, 1]

    def test_other_accounts_are_independent(self, ctx, ledger, account):
        ledger.auto_confirm = False
        other = Account(RECIPIENT, wallet=object())
        submit(ctx, account, one_message())
        assert submit(ctx, other, one_message())["seqno"] == 0


# =============================================================================
# poll_until
# =============================================================================


class TestPollUntil:
    def test_returns_first_truthy(self, ctx):
        values = iter([None, 0, "done"])
        assert poll_until(ctx, lambda: next(values), "test", max_polls=5) == "done"

    def test_gives_up(self, ctx):
        assert poll_until(ctx, lambda: False, "test", max_polls=2) is None

    def test_permanent_errors_propagate(self, ctx):
        def check():
            raise MethodUnavailable("no such method")

        with pytest.raises(MethodUnavailable):
            poll_until(ctx, check, "test", max_polls=3)
