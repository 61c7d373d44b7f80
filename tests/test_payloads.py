import unittest

import loquat
from loquat import ValidationError, build_apikey_payload, build_connect_payload


class ConnectPayloadTests(unittest.TestCase):
    def test_open_network_ignores_psk(self):
        for security in ("Open", "open", "OPEN"):
            for psk in (None, "", "secret123"):
                payload = build_connect_payload("Cafe", psk, security)
                self.assertEqual(payload, {"ssid": "Cafe", "security": "Open", "psk": ""})

    def test_private_network_keeps_fields_verbatim(self):
        cases = [
            ("Home", "hunter22", "WPA2"),
            ("Office 5G", "p@ss word", "wpa3"),
            ("Lab", "x", "WPA2-Enterprise"),
        ]
        for ssid, psk, security in cases:
            payload = build_connect_payload(ssid, psk, security)
            self.assertEqual(payload, {"ssid": ssid, "psk": psk, "security": security})

    def test_security_defaults_to_wpa2(self):
        self.assertEqual(build_connect_payload("Home", "pw", None)["security"], "WPA2")
        self.assertEqual(build_connect_payload("Home", "pw", "")["security"], "WPA2")

    def test_missing_ssid_fails(self):
        for ssid in (None, ""):
            with self.assertRaises(ValidationError) as ctx:
                build_connect_payload(ssid, "pw", "WPA2")
            self.assertEqual(str(ctx.exception), "ssid required")
            self.assertEqual(ctx.exception.field, "ssid")

    def test_missing_psk_for_private_network_fails(self):
        for psk in (None, ""):
            with self.assertRaises(ValidationError) as ctx:
                build_connect_payload("Home", psk, None)
            self.assertEqual(str(ctx.exception), "psk required for private network")
            self.assertEqual(ctx.exception.field, "psk")


class ApikeyPayloadTests(unittest.TestCase):
    def test_builds_payload(self):
        self.assertEqual(
            build_apikey_payload("k-123", "ai.example.com"),
            {"apikey": "k-123", "aiserver": "ai.example.com"},
        )

    def test_each_field_is_required(self):
        cases = [
            (None, "ai.example.com", "apikey"),
            ("", "ai.example.com", "apikey"),
            ("k-123", None, "aiserver"),
            ("k-123", "", "aiserver"),
        ]
        for apikey, aiserver, field in cases:
            with self.assertRaises(ValidationError) as ctx:
                build_apikey_payload(apikey, aiserver)
            self.assertEqual(ctx.exception.field, field)
            self.assertIn(field, str(ctx.exception))


class RegistryTests(unittest.TestCase):
    def test_verbs_and_paths(self):
        gets = {"get_scan_result", "status", "get_status", "get_net_info"}
        posts = {"connect", "apikey"}
        self.assertEqual(set(loquat.COMMANDS), gets | posts)
        for name, cmd in loquat.COMMANDS.items():
            self.assertEqual(cmd.name, name)
            self.assertEqual(cmd.is_get, name in gets)
            self.assertEqual(cmd.build_payload is None, name in gets)

    def test_long_running_commands_use_long_timeout(self):
        self.assertEqual(loquat.lookup_command("connect").timeout, loquat.LONG_TIMEOUT)
        self.assertEqual(loquat.lookup_command("apikey").timeout, loquat.LONG_TIMEOUT)
        self.assertEqual(loquat.lookup_command("status").timeout, loquat.DEFAULT_TIMEOUT)

    def test_unknown_command(self):
        with self.assertRaises(loquat.UnknownCommandError) as ctx:
            loquat.lookup_command("reboot")
        self.assertEqual(ctx.exception.command, "reboot")


if __name__ == "__main__":
    unittest.main()
