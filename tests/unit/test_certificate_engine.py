"""Unit tests for the certificate engine over an in-memory contract."""

from unittest.mock import AsyncMock

import pytest
from web3.exceptions import BadFunctionCallOutput

from certchain.services.blockchain.abi import CERTIFICATE_ABI, SIMPLE_CERTIFICATE_PROFILE
from certchain.services.blockchain.event_decoder import EventDecoder
from certchain.services.certificate.engine import CertificateEngine
from certchain.services.certificate.models import CertificateNotification, ReceiptData
from certchain.utils.exceptions import (
    AlreadyRevoked,
    AuthorizationError,
    CertificateNotFound,
    ContractCallFailed,
    GasEstimationFailed,
    InvalidAddress,
    MintEventNotFound,
    NetworkError,
    NoSignerConfigured,
    ValidationError,
)
from tests.fakes import (
    CONTRACT_ADDRESS,
    ISSUER_ADDRESS,
    OTHER_ADDRESS,
    RECIPIENT_ADDRESS,
    SIGNER_ADDRESS,
    TX_HASH,
    FakeChain,
    make_event_log,
    mock_chain_client,
)


async def mint_ada(engine, **kwargs):
    return await engine.mint(
        RECIPIENT_ADDRESS,
        "Ada Lovelace",
        "Analytical Engines",
        "Royal Society",
        "ipfs://ada",
        **kwargs,
    )


class TestMint:
    """Tests for certificate issuance."""

    async def test_mint_then_get_returns_submitted_fields(self, engine, notifier):
        """Ada Lovelace scenario: mint, then read back the same fields."""
        outcome = await mint_ada(engine)

        assert outcome.token_id == 1
        assert outcome.transaction_hash.startswith("0x")
        assert outcome.explorer_url == f"https://amoy.polygonscan.com/tx/{outcome.transaction_hash}"

        record = await engine.get(outcome.token_id)
        assert record.recipient == RECIPIENT_ADDRESS
        assert record.recipient_name == "Ada Lovelace"
        assert record.course_name == "Analytical Engines"
        assert record.institution_name == "Royal Society"
        assert record.metadata_uri == "ipfs://ada"
        assert record.is_valid
        assert await engine.verify(outcome.token_id)

        notification = notifier.submit.call_args.args[0]
        assert isinstance(notification, CertificateNotification)
        assert notification.token_id == 1
        assert notification.issuer == SIGNER_ADDRESS

    async def test_token_id_comes_from_event_not_counter(self, engine, fake_chain):
        """IDs are whatever the chain assigns."""
        fake_chain.next_token_id = 57
        outcome = await mint_ada(engine)
        assert outcome.token_ids == [57]

    async def test_mint_args_passed_to_submitter(self, engine, submitter, gas_policy):
        await mint_ada(engine)
        method, *args = submitter.submit.await_args.args
        assert method == "mintCertificate"
        assert args == [RECIPIENT_ADDRESS, "Ada Lovelace", "Analytical Engines", "Royal Society", "ipfs://ada"]
        assert submitter.submit.await_args.kwargs["gas_limit"] == 240_000

    async def test_unauthorized_issuer_never_reaches_gas_or_submit(self, engine, gas_policy, submitter):
        with pytest.raises(AuthorizationError):
            await mint_ada(engine, issuer_address=OTHER_ADDRESS)

        gas_policy.gas_limit.assert_not_awaited()
        submitter.submit.assert_not_awaited()

    async def test_contract_owner_is_authorized(self, engine, fake_chain):
        fake_chain.owner = ISSUER_ADDRESS
        outcome = await mint_ada(engine, issuer_address=ISSUER_ADDRESS)
        assert outcome.token_id == 1

    async def test_authorization_read_every_time(self, engine, fake_chain):
        """Revoking an issuer takes effect on the next request."""
        fake_chain.authorized.add(ISSUER_ADDRESS.lower())
        await mint_ada(engine, issuer_address=ISSUER_ADDRESS)

        fake_chain.authorized.discard(ISSUER_ADDRESS.lower())
        with pytest.raises(AuthorizationError):
            await mint_ada(engine, issuer_address=ISSUER_ADDRESS)

    async def test_invalid_recipient_rejected_before_network(self, engine, chain_client):
        with pytest.raises(InvalidAddress):
            await engine.mint("0x1234", "Ada", "Math", "Uni")
        chain_client.call.assert_not_awaited()

    async def test_missing_name_rejected(self, engine, chain_client):
        with pytest.raises(ValidationError):
            await engine.mint(RECIPIENT_ADDRESS, "", "Math", "Uni")
        chain_client.call.assert_not_awaited()

    async def test_read_only_deployment(self, engine, chain_client):
        chain_client.has_signer = False
        with pytest.raises(NoSignerConfigured):
            await mint_ada(engine)

    async def test_gas_estimation_failure_sends_nothing(self, engine, gas_policy, submitter):
        gas_policy.gas_limit.side_effect = GasEstimationFailed("Not authorized")
        with pytest.raises(GasEstimationFailed):
            await mint_ada(engine)
        submitter.submit.assert_not_awaited()

    async def test_notification_failure_does_not_fail_mint(self, engine, notifier):
        notifier.submit.side_effect = RuntimeError("queue broken")
        outcome = await mint_ada(engine)
        assert outcome.token_id == 1

    async def test_missing_mint_event_is_fatal(self, engine, submitter):
        submitter.submit.side_effect = None
        submitter.submit.return_value = ReceiptData(TX_HASH, 10, 100_000, logs=[])
        with pytest.raises(MintEventNotFound):
            await mint_ada(engine)


class TestRetry:
    """Tests for resubmission after network failures."""

    async def test_resubmits_when_previous_unknown(self, engine, submitter, status_checker, fake_chain):
        submitter.submit.side_effect = _sequence(
            NetworkError(reason="reset", tx_hash=TX_HASH, pending=True),
            fake_chain.submit,
        )

        outcome = await mint_ada(engine)

        assert outcome.token_id == 1
        status_checker.check.assert_awaited_once_with(TX_HASH)
        assert submitter.submit.await_count == 2

    async def test_pending_previous_never_resubmitted(self, engine, submitter, status_checker, fake_chain):
        submitter.submit.side_effect = _sequence(
            NetworkError(reason="timeout", tx_hash=TX_HASH, pending=True),
            fake_chain.submit,
        )
        status_checker.check.return_value = {"status": "pending", "tx_hash": TX_HASH}

        with pytest.raises(NetworkError) as exc_info:
            await mint_ada(engine)

        assert exc_info.value.pending
        assert exc_info.value.tx_hash == TX_HASH
        assert submitter.submit.await_count == 1

    async def test_confirmed_previous_adopted(self, engine, submitter, status_checker):
        submitter.submit.side_effect = NetworkError(reason="timeout", tx_hash=TX_HASH, pending=True)
        receipt = {"status": 1, "blockNumber": 10, "gasUsed": 1}
        status_checker.check.return_value = {"status": "confirmed", "receipt": receipt}
        submitter.to_receipt_data.return_value = ReceiptData(
            TX_HASH,
            10,
            100_000,
            logs=[
                make_event_log(
                    CERTIFICATE_ABI,
                    "CertificateMinted",
                    tokenId=12,
                    issuer=SIGNER_ADDRESS,
                    recipient=RECIPIENT_ADDRESS,
                )
            ],
        )

        outcome = await mint_ada(engine)

        assert outcome.token_id == 12
        assert outcome.transaction_hash == TX_HASH
        assert submitter.submit.await_count == 1
        submitter.to_receipt_data.assert_awaited_once_with(TX_HASH, receipt)

    async def test_failed_previous_reported(self, engine, submitter, status_checker):
        submitter.submit.side_effect = NetworkError(reason="timeout", tx_hash=TX_HASH, pending=True)
        status_checker.check.return_value = {"status": "failed", "receipt": {"status": 0}}
        submitter.to_receipt_data.side_effect = ContractCallFailed("reverted", tx_hash=TX_HASH)

        with pytest.raises(ContractCallFailed):
            await mint_ada(engine)
        assert submitter.submit.await_count == 1

    async def test_unsigned_failure_retried_without_status_check(self, engine, submitter, status_checker, fake_chain):
        """A failure before signing leaves nothing to reconcile."""
        submitter.submit.side_effect = _sequence(NetworkError(reason="nonce lookup"), fake_chain.submit)

        outcome = await mint_ada(engine)

        assert outcome.token_id == 1
        status_checker.check.assert_not_awaited()

    async def test_gives_up_after_max_attempts(self, engine, submitter):
        submitter.submit.side_effect = NetworkError(reason="down")
        with pytest.raises(NetworkError):
            await mint_ada(engine)
        assert submitter.submit.await_count == 2


def _sequence(*steps):
    """side_effect that raises exceptions and delegates to callables in order."""
    steps = list(steps)

    async def run(*args, **kwargs):
        step = steps.pop(0)
        if isinstance(step, Exception):
            raise step
        return await step(*args, **kwargs)

    return run


class TestRevoke:
    """Tests for revocation."""

    async def test_revoke_flips_verify(self, engine, fake_chain):
        fake_chain.add_certificate(1)
        assert await engine.verify(1)

        outcome = await engine.revoke(1)

        assert outcome.token_ids == [1]
        assert not await engine.verify(1)
        assert (await engine.get(1)).is_revoked

    async def test_second_revoke_fails_before_gas(self, engine, fake_chain, gas_policy):
        fake_chain.add_certificate(1)
        await engine.revoke(1)

        with pytest.raises(AlreadyRevoked):
            await engine.revoke(1)
        assert gas_policy.gas_limit.await_count == 1

    async def test_requester_must_be_issuer(self, engine, fake_chain, submitter):
        fake_chain.add_certificate(1, issuer=ISSUER_ADDRESS)
        with pytest.raises(AuthorizationError):
            await engine.revoke(1, requester_address=OTHER_ADDRESS)
        submitter.submit.assert_not_awaited()

    async def test_issuer_match_case_insensitive(self, engine, fake_chain):
        fake_chain.add_certificate(1, issuer=ISSUER_ADDRESS)
        outcome = await engine.revoke("1", requester_address=ISSUER_ADDRESS.lower())
        assert outcome.token_ids == [1]

    async def test_revoke_unknown_token(self, engine, gas_policy):
        with pytest.raises(CertificateNotFound):
            await engine.revoke(5)
        gas_policy.gas_limit.assert_not_awaited()


class TestReads:
    """Tests for get / verify / list_by_issuer."""

    async def test_get_unknown_token(self, engine):
        with pytest.raises(CertificateNotFound) as exc_info:
            await engine.get(3)
        assert exc_info.value.reason == "CertificateNotFound"

    async def test_get_invalid_token_id(self, engine, chain_client):
        with pytest.raises(ValidationError):
            await engine.get("abc")
        chain_client.call.assert_not_awaited()

    async def test_verify_unminted_returns_false(self, engine, fake_chain):
        """verify("999999999") with supply 10 is False and never raises."""
        for token_id in range(1, 11):
            fake_chain.add_certificate(token_id)
        assert await engine.total_supply() == 10
        assert await engine.verify("999999999") is False

    async def test_verify_never_raises(self, engine, chain_client):
        chain_client.call.side_effect = NetworkError(reason="down")
        assert await engine.verify(1) is False
        assert await engine.verify("not-a-number") is False

    async def test_list_by_issuer(self, engine, fake_chain):
        """listByIssuer(0xBBB...) returns the issuer's tokens 3 and 7."""
        for token_id in range(1, 11):
            issuer = ISSUER_ADDRESS if token_id in (3, 7) else SIGNER_ADDRESS
            fake_chain.add_certificate(token_id, issuer=issuer)

        records = await engine.list_by_issuer(ISSUER_ADDRESS.lower())

        assert [r.token_id for r in records] == [3, 7]
        assert all(r.issuer == ISSUER_ADDRESS for r in records)

    async def test_list_by_issuer_limit_keeps_most_recent(self, engine, fake_chain):
        for token_id in (2, 4, 6):
            fake_chain.add_certificate(token_id, issuer=ISSUER_ADDRESS)
        records = await engine.list_by_issuer(ISSUER_ADDRESS, limit=2)
        assert [r.token_id for r in records] == [4, 6]

    async def test_list_by_issuer_drops_failed_reads(self, engine, fake_chain, chain_client):
        for token_id in (3, 7):
            fake_chain.add_certificate(token_id, issuer=ISSUER_ADDRESS)

        async def flaky(method, *args):
            if method == "getCertificate" and args[0] == 7:
                raise NetworkError(reason="timeout")
            return await fake_chain.call(method, *args)

        chain_client.call.side_effect = flaky
        records = await engine.list_by_issuer(ISSUER_ADDRESS)
        assert [r.token_id for r in records] == [3]

    async def test_list_by_issuer_invalid_address(self, engine):
        with pytest.raises(InvalidAddress):
            await engine.list_by_issuer("0xBBB")

    async def test_is_authorized_issuer_collapses(self, engine, chain_client):
        assert await engine.is_authorized_issuer(SIGNER_ADDRESS)
        assert not await engine.is_authorized_issuer("garbage")
        chain_client.call.side_effect = NetworkError(reason="down")
        assert not await engine.is_authorized_issuer(SIGNER_ADDRESS)

    async def test_is_authorized_issuer_undecodable_result(self, engine, chain_client):
        """A mismatched ABI reads as not authorized."""
        chain_client.call.side_effect = BadFunctionCallOutput("Could not decode contract function call")
        assert not await engine.is_authorized_issuer(SIGNER_ADDRESS)

    async def test_stats(self, engine, fake_chain):
        fake_chain.add_certificate(1)
        fake_chain.add_certificate(2)
        assert await engine.stats() == {
            "totalCertificates": 2,
            "contractOwner": SIGNER_ADDRESS,
            "contractAddress": CONTRACT_ADDRESS,
        }

    async def test_owner_of(self, engine, fake_chain):
        fake_chain.add_certificate(4)
        assert await engine.owner_of(4) == RECIPIENT_ADDRESS


class TestSimpleProfile:
    """Tests for the SimpleCertificate contract family."""

    @pytest.fixture
    def simple_engine(self, gas_policy, status_checker, notifier):
        fake = FakeChain(profile=SIMPLE_CERTIFICATE_PROFILE)
        client = mock_chain_client(fake)
        submitter = AsyncMock()
        submitter.submit = AsyncMock(side_effect=fake.submit)
        engine = CertificateEngine(
            client,
            gas_policy,
            submitter,
            EventDecoder.for_profile(fake.profile, fake.contract_address),
            status_checker,
            notifier=notifier,
        )
        return engine, fake, submitter

    async def test_mint_without_metadata_argument(self, simple_engine):
        engine, fake, submitter = simple_engine
        outcome = await mint_ada(engine)

        assert outcome.token_id == 1
        method, *args = submitter.submit.await_args.args
        assert method == "issueCertificate"
        assert len(args) == 4

    async def test_recipient_from_owner_of_and_validity_from_is_revoked(self, simple_engine):
        engine, fake, _ = simple_engine
        fake.add_certificate(2, is_valid=False)

        record = await engine.get(2)

        assert record.recipient == RECIPIENT_ADDRESS
        assert record.is_revoked
        assert ("ownerOf", (2,)) in fake.calls

    async def test_string_not_found_revert(self, simple_engine):
        engine, _, _ = simple_engine
        with pytest.raises(CertificateNotFound):
            await engine.get(9)
