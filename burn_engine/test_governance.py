"""
Governance: admin transfer, timelocked and direct fee split changes,
parameter bounds, root token assignment, pause/resume.
"""
import pytest

from burn_engine.conftest import ADMIN, ROOT, SECONDARY, STRANGER
from burn_engine.errors import ErrorCode, ValidationError

NEW_ADMIN = b'\xCC' * 32


class TestAdminTransfer:
    def test_two_step_transfer(self, engine):
        engine.governance.propose_admin_transfer(ADMIN, NEW_ADMIN)
        assert engine.store.get_treasury().admin == ADMIN

        engine.governance.accept_admin_transfer(NEW_ADMIN)
        treasury = engine.store.get_treasury()
        assert treasury.admin == NEW_ADMIN
        assert treasury.pending_admin is None

        with pytest.raises(ValidationError) as exc:
            engine.governance.emergency_pause(ADMIN)
        assert exc.value.code == ErrorCode.UNAUTHORIZED_ACCESS

    def test_only_proposed_admin_accepts(self, engine):
        engine.governance.propose_admin_transfer(ADMIN, NEW_ADMIN)
        with pytest.raises(ValidationError) as exc:
            engine.governance.accept_admin_transfer(STRANGER)
        assert exc.value.code == ErrorCode.UNAUTHORIZED_ACCESS

    def test_accept_without_proposal(self, engine):
        with pytest.raises(ValidationError) as exc:
            engine.governance.accept_admin_transfer(NEW_ADMIN)
        assert exc.value.code == ErrorCode.NO_PENDING_ADMIN_TRANSFER

    def test_cancel(self, engine):
        with pytest.raises(ValidationError) as exc:
            engine.governance.cancel_admin_transfer(ADMIN)
        assert exc.value.code == ErrorCode.NO_PENDING_ADMIN_TRANSFER

        engine.governance.propose_admin_transfer(ADMIN, NEW_ADMIN)
        engine.governance.cancel_admin_transfer(ADMIN)
        with pytest.raises(ValidationError) as exc:
            engine.governance.accept_admin_transfer(NEW_ADMIN)
        assert exc.value.code == ErrorCode.NO_PENDING_ADMIN_TRANSFER

    def test_stranger_cannot_propose(self, engine):
        with pytest.raises(ValidationError) as exc:
            engine.governance.propose_admin_transfer(STRANGER, STRANGER)
        assert exc.value.code == ErrorCode.UNAUTHORIZED_ACCESS


class TestFeeSplit:
    def test_timelocked_change(self, engine):
        engine.governance.propose_fee_split(ADMIN, 6000)
        with pytest.raises(ValidationError) as exc:
            engine.governance.execute_fee_split(ADMIN)
        assert exc.value.code == ErrorCode.TIMELOCK_NOT_EXPIRED

        engine.clock.advance(seconds=3600)
        engine.governance.execute_fee_split(ADMIN)
        treasury = engine.store.get_treasury()
        assert treasury.fee_split_bps == 6000
        assert treasury.pending_fee_split is None

    def test_proposal_bounded_by_delta(self, engine):
        with pytest.raises(ValidationError) as exc:
            engine.governance.propose_fee_split(ADMIN, 7000)
        assert exc.value.code == ErrorCode.FEE_SPLIT_DELTA_TOO_LARGE

    def test_execute_rechecks_delta(self, engine):
        engine.governance.propose_fee_split(ADMIN, 6020)
        engine.governance.update_fee_split(ADMIN, 5020)
        engine.clock.advance(seconds=3600)
        with pytest.raises(ValidationError) as exc:
            engine.governance.execute_fee_split(ADMIN)
        assert exc.value.code == ErrorCode.FEE_SPLIT_DELTA_TOO_LARGE

    def test_execute_without_proposal(self, engine):
        with pytest.raises(ValidationError) as exc:
            engine.governance.execute_fee_split(ADMIN)
        assert exc.value.code == ErrorCode.NO_PENDING_FEE_SPLIT

    def test_cancel_proposal(self, engine):
        engine.governance.propose_fee_split(ADMIN, 5800)
        engine.governance.cancel_fee_split(ADMIN)
        assert engine.store.get_treasury().pending_fee_split is None

    def test_direct_update_cooldown(self, engine):
        engine.governance.update_fee_split(ADMIN, 5800)
        with pytest.raises(ValidationError) as exc:
            engine.governance.update_fee_split(ADMIN, 6000)
        assert exc.value.code == ErrorCode.TIMELOCK_NOT_EXPIRED

        engine.clock.advance(seconds=3600)
        engine.governance.update_fee_split(ADMIN, 6000)
        assert engine.store.get_treasury().fee_split_bps == 6000

    def test_direct_update_bounds(self, engine):
        with pytest.raises(ValidationError) as exc:
            engine.governance.update_fee_split(ADMIN, 6100)
        assert exc.value.code == ErrorCode.FEE_SPLIT_DELTA_TOO_LARGE
        assert engine.store.get_treasury().fee_split_bps == 5520


class TestParameters:
    def test_update(self, engine):
        engine.governance.update_parameters(
            ADMIN, min_fees_threshold=20_000_000, slippage_bps=300, min_cycle_interval=120)
        treasury = engine.store.get_treasury()
        assert treasury.min_fees_threshold == 20_000_000
        assert treasury.slippage_bps == 300
        assert treasury.min_cycle_interval == 120

    def test_slippage_ceiling(self, engine):
        with pytest.raises(ValidationError) as exc:
            engine.governance.update_parameters(ADMIN, slippage_bps=501)
        assert exc.value.code == ErrorCode.SLIPPAGE_CONFIG_TOO_HIGH

    def test_max_below_min_rejected(self, engine):
        with pytest.raises(ValidationError) as exc:
            engine.governance.update_parameters(ADMIN, max_fees_per_cycle=1)
        assert exc.value.code == ErrorCode.INVALID_PARAMETER


class TestHierarchy:
    def test_set_root_moves_flag(self, ecosystem):
        assert ecosystem.store.get_token_stats(ROOT).is_root_token
        ecosystem.governance.set_root_token(ADMIN, SECONDARY)
        assert not ecosystem.store.get_token_stats(ROOT).is_root_token
        assert ecosystem.store.get_token_stats(SECONDARY).is_root_token
        assert ecosystem.store.get_treasury().root_token == SECONDARY

    def test_root_needs_stats(self, engine):
        with pytest.raises(ValidationError) as exc:
            engine.governance.set_root_token(ADMIN, ROOT)
        assert exc.value.code == ErrorCode.INVALID_ROOT_TOKEN


class TestEmergency:
    def test_pause_and_resume(self, engine):
        engine.governance.emergency_pause(ADMIN)
        treasury = engine.store.get_treasury()
        assert treasury.emergency_pause and not treasury.is_active

        engine.governance.resume(ADMIN)
        assert engine.store.get_treasury().is_operational

    def test_stranger_cannot_pause(self, engine):
        with pytest.raises(ValidationError) as exc:
            engine.governance.emergency_pause(STRANGER)
        assert exc.value.code == ErrorCode.UNAUTHORIZED_ACCESS
