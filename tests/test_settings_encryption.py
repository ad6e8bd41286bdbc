import os
import sys
import unittest
import keyring
import yaml
sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from config import YamlConfig
from settings_schema import SettingsSchema, load_settings, validate_settings

class DummyKeyring(keyring.backend.KeyringBackend):
    priority = 1
    def __init__(self):
        self.store = {}
    def get_password(self, service, username):
        return self.store.get((service, username))
    def set_password(self, service, username, password):
        self.store[(service, username)] = password
    def delete_password(self, service, username):
        self.store.pop((service, username), None)

class SettingsEncryptionTest(unittest.TestCase):
    def setUp(self) -> None:
        self.keyring = DummyKeyring()
        keyring.set_keyring(self.keyring)
        os.environ['ENCRYPT_SETTINGS'] = '1'
        self.path = 'enc_settings.yaml'
        if os.path.exists(self.path):
            os.remove(self.path)

    def tearDown(self) -> None:
        if os.path.exists(self.path):
            os.remove(self.path)
        os.environ.pop('ENCRYPT_SETTINGS', None)

    def test_encrypt_and_load(self) -> None:
        cfg = YamlConfig(self.path)
        cfg.save({'api_token': 'secret', 'user_id': 'alice'})
        self.assertTrue(os.path.exists(self.path))
        with open(self.path, encoding='utf-8') as f:
            raw = yaml.safe_load(f)
        self.assertIs(raw['api_token'], True)
        self.assertEqual(self.keyring.store[('workout-tracker', 'api_token')], 'secret')
        data = cfg.load()
        self.assertEqual(data['api_token'], 'secret')
        self.assertEqual(data['user_id'], 'alice')

    def test_missing_secret_dropped(self) -> None:
        with open(self.path, 'w', encoding='utf-8') as f:
            yaml.safe_dump({'api_token': True}, f)
        self.assertNotIn('api_token', YamlConfig(self.path).load())

    def test_set_and_forget_secret(self) -> None:
        cfg = YamlConfig(self.path)
        cfg.save({'api_token': 'secret'})
        cfg.set('user_id', 'dana')
        self.assertEqual(cfg.get('api_token'), 'secret')
        self.assertEqual(cfg.get('user_id'), 'dana')
        cfg.forget_secret('api_token')
        self.assertIsNone(cfg.get('api_token'))
        self.assertNotIn(('workout-tracker', 'api_token'), self.keyring.store)

    def test_env_override(self) -> None:
        YamlConfig(self.path).save({'rest_seconds': 60})
        os.environ['WORKOUT_TRACKER_REST_SECONDS'] = '45'
        try:
            self.assertEqual(load_settings(self.path).rest_seconds, 45)
        finally:
            os.environ.pop('WORKOUT_TRACKER_REST_SECONDS')


class SettingsSchemaTest(unittest.TestCase):
    def setUp(self) -> None:
        self.path = 'test_settings.yaml'
        if os.path.exists(self.path):
            os.remove(self.path)

    def tearDown(self) -> None:
        if os.path.exists(self.path):
            os.remove(self.path)

    def test_defaults(self) -> None:
        settings = load_settings(self.path)
        self.assertEqual(settings, SettingsSchema())
        self.assertEqual(settings.rest_seconds, 90)
        self.assertEqual(settings.rest_adjust_step, 30)
        self.assertEqual(settings.api_base_url, 'http://localhost:8000')

    def test_file_overrides(self) -> None:
        YamlConfig(self.path).save({'rest_seconds': 120, 'user_id': 'bob'})
        settings = load_settings(self.path)
        self.assertEqual(settings.rest_seconds, 120)
        self.assertEqual(settings.user_id, 'bob')
        self.assertEqual(settings.workout_type, 'strength')

    def test_invalid(self) -> None:
        with self.assertRaises(ValueError):
            validate_settings({'rest_seconds': -5})
        with self.assertRaises(ValueError):
            validate_settings({'log_level': 'LOUD'})
        with self.assertRaises(ValueError):
            validate_settings({'rest_seconds': 0})


if __name__ == '__main__':
    unittest.main()
