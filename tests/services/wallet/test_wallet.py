from __future__ import annotations

from decimal import Decimal
import json
from pathlib import Path

import pytest

from webcash.wallet.amounts import decimal_amount_to_string
from webcash.wallet.derivation import derive_secret
from webcash.wallet.errors import (
    WebcashFormatError,
    WebcashInsufficientFundsError,
    WebcashPolicyError,
    WebcashPrecisionError,
    WebcashTransportError,
)
from webcash.wallet.storage import JsonWalletStore
from webcash.wallet.tokens import SecretWebcash, deserialize_secret, deserialize_webcash, generate_random_value
from webcash.wallet.wallet import Wallet, chunk_array

MASTER_SECRET = "6fc3d1b067646ea749e4001e05c757c491b351424ae998339d6341d7a18e12d4"


class _FakeServer:
    def __init__(self) -> None:
        self.ledger: dict[str, dict[str, object]] = {}
        self.replace_calls: list[tuple[list[str], list[str], dict[str, object]]] = []
        self.health_check_calls: list[list[str]] = []
        self.fail_replace: Exception | None = None

    def mint(self, amount: str) -> SecretWebcash:
        secret = SecretWebcash(Decimal(amount), generate_random_value())
        self.ledger[secret.to_public().hashed_value] = {"amount": secret.amount, "spent": False}
        return secret

    def spend(self, webcash: SecretWebcash) -> None:
        self.ledger[webcash.to_public().hashed_value]["spent"] = True

    def replace(self, webcashes, new_webcashes, legalese) -> None:  # type: ignore[no-untyped-def]
        self.replace_calls.append((list(webcashes), list(new_webcashes), dict(legalese)))
        if self.fail_replace is not None:
            raise self.fail_replace
        inputs = [deserialize_secret(item) for item in webcashes]
        outputs = [deserialize_secret(item) for item in new_webcashes]
        for item in inputs:
            entry = self.ledger.get(item.to_public().hashed_value)
            if entry is None or entry["spent"]:
                raise WebcashTransportError("Server returned an error: Can't replace spent webcash", status_code=500)
        if sum(item.amount for item in inputs) != sum(item.amount for item in outputs):
            raise WebcashTransportError("Server returned an error: Inputs and outputs must balance", status_code=500)
        for item in inputs:
            self.spend(item)
        for item in outputs:
            self.ledger[item.to_public().hashed_value] = {"amount": item.amount, "spent": False}

    def health_check(self, public_webcashes) -> dict[str, dict[str, object]]:  # type: ignore[no-untyped-def]
        self.health_check_calls.append(list(public_webcashes))
        results: dict[str, dict[str, object]] = {}
        for item in public_webcashes:
            entry = self.ledger.get(deserialize_webcash(item).hashed_value)
            if entry is None:
                results[item] = {"spent": None}
            elif entry["spent"]:
                results[item] = {"spent": True}
            else:
                results[item] = {"spent": False, "amount": decimal_amount_to_string(entry["amount"])}
        return results


def _wallet(server: _FakeServer, *, terms: bool = True, store: JsonWalletStore | None = None, **kwargs: object) -> Wallet:
    wallet = Wallet(master_secret=MASTER_SECRET, server=server, store=store, **kwargs)
    if terms:
        wallet.set_legal_agreements_to_true()
    return wallet


def test_new_wallet_defaults() -> None:
    wallet = Wallet(server=_FakeServer())
    assert len(wallet.master_secret) == 64
    assert wallet.walletdepths == {"RECEIVE": 0, "PAY": 0, "CHANGE": 0, "MINING": 0}
    assert wallet.check_legal_agreements() is False
    assert wallet.get_balance() == Decimal(0)
    assert set(wallet.get_contents()) == {
        "version",
        "legalese",
        "webcash",
        "unconfirmed",
        "log",
        "master_secret",
        "walletdepths",
    }


def test_invalid_walletdepths_key_rejected() -> None:
    with pytest.raises(WebcashPolicyError, match="Invalid chain code"):
        Wallet(server=_FakeServer(), walletdepths={"SAVINGS": 1})


def test_generate_next_secret_advances_depth_unless_seeking() -> None:
    wallet = _wallet(_FakeServer())
    first = wallet.generate_next_secret("RECEIVE")
    assert first == derive_secret(MASTER_SECRET, "RECEIVE", 0)
    assert wallet.walletdepths["RECEIVE"] == 1
    assert wallet.generate_next_secret("RECEIVE", seek=100) == derive_secret(MASTER_SECRET, "RECEIVE", 100)
    assert wallet.walletdepths["RECEIVE"] == 1


def test_insert_replaces_with_receive_secret() -> None:
    server = _FakeServer()
    incoming = server.mint("1.5")
    wallet = _wallet(server)

    new_webcash = wallet.insert(str(incoming), memo="hello")

    expected = SecretWebcash(Decimal("1.5"), derive_secret(MASTER_SECRET, "RECEIVE", 0))
    assert new_webcash == str(expected)
    assert wallet.confirmed == [expected]
    assert wallet.pending == []
    assert wallet.walletdepths["RECEIVE"] == 1
    assert wallet.get_balance() == Decimal("1.5")
    assert server.replace_calls == [([str(incoming)], [str(expected)], {"terms": True})]
    entry = wallet.log[-1]
    assert entry["type"] == "insert"
    assert entry["amount"] == "1.5"
    assert entry["webcash"] == str(incoming)
    assert entry["new_webcash"] == str(expected)
    assert entry["memo"] == "hello"


def test_insert_requires_terms_without_side_effects() -> None:
    server = _FakeServer()
    incoming = server.mint("1")
    wallet = _wallet(server, terms=False)
    with pytest.raises(WebcashPolicyError, match="legal terms"):
        wallet.insert(str(incoming))
    assert wallet.walletdepths["RECEIVE"] == 0
    assert wallet.pending == []
    assert server.replace_calls == []


def test_insert_rejects_public_and_malformed() -> None:
    wallet = _wallet(_FakeServer())
    with pytest.raises(WebcashFormatError):
        wallet.insert("e1:public:abc")
    with pytest.raises(WebcashFormatError):
        wallet.insert("not webcash")
    assert wallet.walletdepths["RECEIVE"] == 0


def test_insert_transport_failure_keeps_staged_token(tmp_path: Path) -> None:
    server = _FakeServer()
    incoming = server.mint("1")
    server.fail_replace = WebcashTransportError("Server returned an error: down", status_code=500)
    store = JsonWalletStore(tmp_path / "wallet.webcash")
    wallet = _wallet(server, store=store)

    with pytest.raises(WebcashTransportError, match="down"):
        wallet.insert(str(incoming))

    staged = SecretWebcash(Decimal(1), derive_secret(MASTER_SECRET, "RECEIVE", 0))
    assert wallet.pending == [staged]
    assert wallet.confirmed == []
    assert wallet.walletdepths["RECEIVE"] == 1
    saved = json.loads((tmp_path / "wallet.webcash").read_text(encoding="utf-8"))
    assert saved["unconfirmed"] == [str(staged)]
    assert saved["walletdepths"]["RECEIVE"] == 1


def test_insert_wraps_unexpected_server_errors() -> None:
    server = _FakeServer()
    incoming = server.mint("1")
    server.fail_replace = RuntimeError("socket closed")
    wallet = _wallet(server)
    with pytest.raises(WebcashTransportError, match="REPLACE_FAILED:socket closed"):
        wallet.insert(str(incoming))


def test_pay_with_change() -> None:
    server = _FakeServer()
    held = server.mint("3")
    wallet = _wallet(server, webcash=[held])

    payment = wallet.pay("1", memo="coffee")

    expected_payment = SecretWebcash(Decimal(1), derive_secret(MASTER_SECRET, "PAY", 0))
    expected_change = SecretWebcash(Decimal(2), derive_secret(MASTER_SECRET, "CHANGE", 0))
    assert payment == str(expected_payment)
    assert payment == "e1:secret:b16095ea71f638b3a5651bffa5255a608a3cd535050f4828c1585b684ee529c7"
    assert server.replace_calls[-1][0] == [str(held)]
    assert server.replace_calls[-1][1] == [str(expected_change), str(expected_payment)]
    assert wallet.confirmed == [expected_change]
    assert wallet.pending == []
    assert wallet.get_balance() == Decimal(2)
    assert wallet.walletdepths["PAY"] == 1
    assert wallet.walletdepths["CHANGE"] == 1
    assert [entry["type"] for entry in wallet.log] == ["change", "payment"]
    assert wallet.log[-1]["memo"] == "coffee"
    assert wallet.log[0]["amount"] == "2"


def test_pay_exact_amount_derives_no_change() -> None:
    server = _FakeServer()
    first = server.mint("0.5")
    second = server.mint("0.75")
    wallet = _wallet(server, webcash=[first, second])

    wallet.pay("1.25")

    assert server.replace_calls[-1][0] == [str(first), str(second)]
    assert len(server.replace_calls[-1][1]) == 1
    assert wallet.confirmed == []
    assert wallet.walletdepths["CHANGE"] == 0
    assert [entry["type"] for entry in wallet.log] == ["payment"]


def test_pay_rejections_leave_state_untouched() -> None:
    server = _FakeServer()
    held = server.mint("1")
    wallet = _wallet(server, webcash=[held])

    with pytest.raises(WebcashInsufficientFundsError):
        wallet.pay("2")
    with pytest.raises(WebcashPolicyError, match="greater than zero"):
        wallet.pay("0")
    with pytest.raises(WebcashPrecisionError):
        wallet.pay("0.000000001")

    assert wallet.confirmed == [held]
    assert wallet.walletdepths == {"RECEIVE": 0, "PAY": 0, "CHANGE": 0, "MINING": 0}
    assert server.replace_calls == []


def test_pay_requires_terms() -> None:
    server = _FakeServer()
    wallet = _wallet(server, terms=False, webcash=[server.mint("1")])
    with pytest.raises(WebcashPolicyError, match="legal terms"):
        wallet.pay("1")
    assert wallet.walletdepths["PAY"] == 0


def test_pay_transport_failure_keeps_outputs_pending() -> None:
    server = _FakeServer()
    held = server.mint("3")
    server.fail_replace = WebcashTransportError("Server returned an error: down", status_code=500)
    wallet = _wallet(server, webcash=[held])

    with pytest.raises(WebcashTransportError):
        wallet.pay("1")

    expected_payment = SecretWebcash(Decimal(1), derive_secret(MASTER_SECRET, "PAY", 0))
    expected_change = SecretWebcash(Decimal(2), derive_secret(MASTER_SECRET, "CHANGE", 0))
    assert wallet.pending == [expected_payment, expected_change]
    assert wallet.confirmed == [held]
    assert wallet.log == []


def test_check_reconciles_against_server() -> None:
    server = _FakeServer()
    corrected = server.mint("2")
    spent = server.mint("1")
    server.spend(spent)
    unknown = SecretWebcash(Decimal(1), generate_random_value())
    duplicated = server.mint("3")
    wallet = _wallet(
        server,
        webcash=[corrected.with_amount("1"), spent, unknown, duplicated, duplicated],
    )

    summary = wallet.check()

    assert wallet.confirmed == [duplicated, corrected]
    assert wallet.pending == [duplicated, spent, unknown]
    assert wallet.get_balance() == Decimal(5)
    assert summary.checked == 4
    assert summary.unspent == 2
    assert summary.amount_corrected == 1
    assert summary.removed == 2
    assert summary.duplicates == 1
    assert summary.warnings == [f"DUPLICATE_WEBCASH:{duplicated.to_public().hashed_value}"]


def test_check_batches_health_check_requests() -> None:
    server = _FakeServer()
    held = [server.mint("1") for _ in range(5)]
    wallet = _wallet(server, webcash=held, health_check_batch_size=2)

    summary = wallet.check()

    assert [len(call) for call in server.health_check_calls] == [2, 2, 1]
    assert summary.checked == 5
    assert wallet.confirmed == held


def test_check_propagates_transport_errors() -> None:
    class _DownServer(_FakeServer):
        def health_check(self, public_webcashes):  # type: ignore[no-untyped-def]
            raise WebcashTransportError("Server returned an error: down", status_code=502)

    server = _DownServer()
    wallet = _wallet(server, webcash=[server.mint("1")])
    with pytest.raises(WebcashTransportError, match="down"):
        wallet.check()


def test_contents_round_trip() -> None:
    server = _FakeServer()
    wallet = _wallet(server, webcash=[server.mint("1")], unconfirmed=[server.mint("2")])
    wallet.generate_next_secret("MINING")

    restored = Wallet.from_contents(wallet.get_contents(), server=server)

    assert restored.get_contents() == wallet.get_contents()
    assert restored.walletdepths["MINING"] == 1
    assert restored.check_legal_agreements() is True


def test_chunk_array() -> None:
    assert chunk_array([1, 2, 3, 4, 5], 2) == [[1, 2], [3, 4], [5]]
    assert chunk_array([], 3) == []
    with pytest.raises(ValueError):
        chunk_array([1], 0)


def test_pay_from_empty_wallet_changes_nothing() -> None:
    server = _FakeServer()
    staged = SecretWebcash(Decimal(1), derive_secret(MASTER_SECRET, "RECEIVE", 0))
    wallet = _wallet(server, unconfirmed=[staged])
    before = wallet.get_contents()

    with pytest.raises(WebcashInsufficientFundsError, match="enough funds"):
        wallet.pay("1")

    assert wallet.pending == [staged]
    assert wallet.get_contents() == before
    assert server.replace_calls == []


def test_pay_change_is_exact_for_large_amounts() -> None:
    class _RecordingServer(_FakeServer):
        def replace(self, webcashes, new_webcashes, legalese) -> None:  # type: ignore[no-untyped-def]
            self.replace_calls.append((list(webcashes), list(new_webcashes), dict(legalese)))

    server = _RecordingServer()
    held = SecretWebcash(Decimal("1E+30"), generate_random_value())
    wallet = _wallet(server, webcash=[held])

    wallet.pay("0.00000001")

    assert wallet.confirmed[0].amount == Decimal("999999999999999999999999999999.99999999")
    assert server.replace_calls[-1][1][0] == "e999999999999999999999999999999.99999999:secret:" + derive_secret(
        MASTER_SECRET, "CHANGE", 0
    )
