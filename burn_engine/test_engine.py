"""
Engine façade: signed instructions, per-signer nonces, metrics and
configuration files.
"""
import os
import shutil
import tempfile
import unittest

from burn_engine.config import Config
from burn_engine.conftest import make_mint
from burn_engine.crypto import generate_key_pair, public_key_to_address, serialize_public_key
from burn_engine.db import DB
from burn_engine.engine import BurnEngine
from burn_engine.errors import ErrorCode, ValidationError
from burn_engine.instruction import (
    EMERGENCY_PAUSE, INITIALIZE_TOKEN_STATS, REGISTER_VALIDATED_FEES,
    RUN_ECOSYSTEM_CYCLE, Instruction,
)
from burn_engine.simulation import ManualClock

MINT = make_mint("engine")


class TestBurnEngine(unittest.TestCase):
    def setUp(self):
        self.test_dir = tempfile.mkdtemp()
        self.engine = BurnEngine(db=DB(self.test_dir), clock=ManualClock())

        self.admin_key, admin_public = generate_key_pair()
        self.admin_pem = serialize_public_key(admin_public)
        self.admin = public_key_to_address(self.admin_pem)
        self.engine.initialize(self.admin)

        self.other_key, other_public = generate_key_pair()
        self.other_pem = serialize_public_key(other_public)

    def tearDown(self):
        self.engine.close()
        shutil.rmtree(self.test_dir)

    def _ix(self, ix_type, data, nonce, key=None, pem=None):
        ix = Instruction(pem or self.admin_pem, ix_type, data, nonce)
        ix.sign(key or self.admin_key)
        return ix

    def _instruction_count(self, ix_type, status):
        return self.engine.monitor.registry.get_sample_value(
            'burn_engine_instructions_total', {'ix_type': ix_type, 'status': status}) or 0

    def _rejection_count(self, code, category):
        return self.engine.monitor.registry.get_sample_value(
            'burn_engine_rejections_total', {'code': code, 'category': category}) or 0

    def test_signed_instruction_executes(self):
        self.engine.process_instruction(self._ix(INITIALIZE_TOKEN_STATS, {'mint': MINT}, 0))
        self.assertIsNotNone(self.engine.store.get_token_stats(MINT))
        self.assertEqual(self.engine.store.get_nonce(self.admin).nonce, 1)
        self.assertEqual(self._instruction_count(INITIALIZE_TOKEN_STATS, 'success'), 1)

    def test_replay_rejected(self):
        ix = self._ix(INITIALIZE_TOKEN_STATS, {'mint': MINT}, 0)
        self.engine.process_instruction(ix)
        with self.assertRaises(ValidationError) as ctx:
            self.engine.process_instruction(ix)
        self.assertEqual(ctx.exception.code, ErrorCode.INVALID_NONCE)
        self.assertEqual(self._rejection_count('InvalidNonce', 'authorization'), 1)

    def test_tampered_instruction_rejected(self):
        ix = self._ix(INITIALIZE_TOKEN_STATS, {'mint': MINT}, 0)
        ix.data = {'mint': make_mint("other")}
        with self.assertRaises(ValidationError) as ctx:
            self.engine.process_instruction(ix)
        self.assertEqual(ctx.exception.code, ErrorCode.INVALID_SIGNATURE)
        self.assertEqual(self.engine.store.get_nonce(self.admin).nonce, 0)

    def test_foreign_signature_rejected(self):
        ix = Instruction(self.admin_pem, EMERGENCY_PAUSE, {}, 0)
        ix.sign(self.other_key)
        with self.assertRaises(ValidationError) as ctx:
            self.engine.process_instruction(ix)
        self.assertEqual(ctx.exception.code, ErrorCode.INVALID_SIGNATURE)
        self.assertTrue(self.engine.store.get_treasury().is_operational)

    def test_missing_field_rejected(self):
        ix = self._ix(REGISTER_VALIDATED_FEES, {'mint': MINT, 'fee_amount': 1}, 0)
        with self.assertRaises(ValidationError) as ctx:
            self.engine.process_instruction(ix)
        self.assertEqual(ctx.exception.code, ErrorCode.INVALID_PARAMETER)

    def test_malformed_field_rejected(self):
        data = {'mint': MINT, 'fee_amount': "1000", 'end_slot': 10, 'tx_count': 1}
        ix = self._ix(REGISTER_VALIDATED_FEES, data, 0)
        with self.assertRaises(ValidationError) as ctx:
            self.engine.process_instruction(ix)
        self.assertEqual(ctx.exception.code, ErrorCode.INVALID_PARAMETER)
        self.assertEqual(self._rejection_count('InvalidParameter', 'bounds'), 1)
        self.assertEqual(self._instruction_count(REGISTER_VALIDATED_FEES, 'rejected'), 1)
        self.assertEqual(self.engine.store.get_nonce(self.admin).nonce, 0)

    def test_bool_is_not_an_amount(self):
        data = {'mint': MINT, 'fee_amount': True, 'end_slot': 10, 'tx_count': 1}
        with self.assertRaises(ValidationError) as ctx:
            self.engine.process_instruction(self._ix(REGISTER_VALIDATED_FEES, data, 0))
        self.assertEqual(ctx.exception.code, ErrorCode.INVALID_PARAMETER)

    def test_data_must_be_a_map(self):
        ix = self._ix(EMERGENCY_PAUSE, [1, 2], 0)
        with self.assertRaises(ValidationError) as ctx:
            self.engine.process_instruction(ix)
        self.assertEqual(ctx.exception.code, ErrorCode.INVALID_PARAMETER)
        self.assertEqual(self._rejection_count('InvalidParameter', 'bounds'), 1)
        self.assertTrue(self.engine.store.get_treasury().is_operational)

    def test_nonce_advances_when_handler_rejects(self):
        other = public_key_to_address(self.other_pem)
        ix = self._ix(EMERGENCY_PAUSE, {}, 0, key=self.other_key, pem=self.other_pem)
        with self.assertRaises(ValidationError) as ctx:
            self.engine.process_instruction(ix)
        self.assertEqual(ctx.exception.code, ErrorCode.UNAUTHORIZED_ACCESS)
        self.assertEqual(self.engine.store.get_nonce(other).nonce, 1)
        self.assertEqual(self._instruction_count(EMERGENCY_PAUSE, 'rejected'), 1)
        self.assertEqual(self._rejection_count('UnauthorizedAccess', 'authorization'), 1)

    def test_admin_pause_through_instruction(self):
        self.engine.process_instruction(self._ix(EMERGENCY_PAUSE, {}, 0))
        self.assertFalse(self.engine.store.get_treasury().is_operational)

    def test_ecosystem_cycle_is_admin_only(self):
        ix = self._ix(RUN_ECOSYSTEM_CYCLE, {'secondaries': []}, 0,
                      key=self.other_key, pem=self.other_pem)
        with self.assertRaises(ValidationError) as ctx:
            self.engine.process_instruction(ix)
        self.assertEqual(ctx.exception.code, ErrorCode.UNAUTHORIZED_ACCESS)

    def test_double_initialize(self):
        with self.assertRaises(ValidationError) as ctx:
            self.engine.initialize(self.admin)
        self.assertEqual(ctx.exception.code, ErrorCode.ACCOUNT_ALREADY_INITIALIZED)

    def test_get_stats(self):
        self.engine.cycle.initialize_token_stats(MINT)
        stats = self.engine.get_stats()
        self.assertTrue(stats['initialized'])
        self.assertEqual(stats['treasury']['admin'], self.admin.hex())
        self.assertEqual(stats['treasury']['fee_split_bps'], 5520)
        self.assertEqual([t['mint'] for t in stats['tokens']], [MINT.hex()])

    def test_refresh_metrics(self):
        self.engine.governance.emergency_pause(self.admin)
        self.engine.refresh_metrics()
        self.assertEqual(self.engine.monitor.registry.get_sample_value('burn_engine_paused'), 1)


class TestConfig(unittest.TestCase):
    def setUp(self):
        self.test_dir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.test_dir)

    def test_round_trip(self):
        config = Config.default()
        config.treasury.slippage_bps = 300
        config.validator.sync_requires_admin = False
        path = os.path.join(self.test_dir, 'config.json')
        config.to_file(path)

        loaded = Config.from_file(path)
        self.assertEqual(loaded.to_dict(), config.to_dict())
        self.assertEqual(loaded.program.program_id_bytes, config.program.program_id_bytes)

    def test_missing_sections_use_defaults(self):
        config = Config.from_dict({'treasury': {'min_cycle_interval': 120}})
        self.assertEqual(config.treasury.min_cycle_interval, 120)
        self.assertEqual(config.treasury.fee_split_bps, 5520)
        self.assertTrue(config.validator.sync_requires_admin)

    def test_treasury_initialized_from_config(self):
        config = Config.default()
        config.treasury.min_fees_threshold = 25_000_000
        engine = BurnEngine(db=DB(self.test_dir), config=config, clock=ManualClock())
        try:
            treasury = engine.initialize(b'\xAA' * 32)
            self.assertEqual(treasury.min_fees_threshold, 25_000_000)
            self.assertEqual(treasury.authority_bump, engine.authority.custody_bump)
        finally:
            engine.close()


if __name__ == '__main__':
    unittest.main()
