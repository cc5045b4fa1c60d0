import struct
import unittest

from tests.utils import (crypto_agile_log, digest, legacy_log, measured_event2, pcr_event, pcr_event2,
                         spec_id_event)
from tpm_attest.event_log import EventLog, LogFormat, MalformedLog
from tpm_attest.tpm_constants import TpmAlgorithm, TpmEventType


class TestLegacyLog(unittest.TestCase):
    def setUp(self) -> None:
        self.first = pcr_event(0, TpmEventType.S_CRTM_VERSION, digest(b"v1.0", TpmAlgorithm.SHA1), b"v1.0")
        self.second = pcr_event(4, TpmEventType.SEPARATOR, digest(b"\0" * 4, TpmAlgorithm.SHA1), b"\0" * 4)
        self.log = EventLog(legacy_log(self.first, self.second))

    def test_format_detection(self):
        self.assertEqual(self.log.format, LogFormat.LEGACY_SHA1)
        self.assertIsNone(self.log.header)
        self.assertEqual(self.log.active_algorithms, (TpmAlgorithm.SHA1,))

    def test_records(self):
        events = self.log.events()
        self.assertEqual(len(events), 2)
        self.assertEqual([e.sequence_number for e in events], [0, 1])
        self.assertEqual(events[0].pcr_index, 0)
        self.assertEqual(events[0].event_type, TpmEventType.S_CRTM_VERSION)
        self.assertEqual(events[0].event_data, b"v1.0")
        self.assertEqual(dict(events[1].digests), {TpmAlgorithm.SHA1: digest(b"\0" * 4, TpmAlgorithm.SHA1)})
        self.assertEqual(events[1].offset, len(self.first))

    def test_spec_id_event00_stays_legacy(self):
        data = b"Spec ID Event00\0" + b"\0" * 8
        log = EventLog(pcr_event(0, TpmEventType.NO_ACTION, b"\0" * 20, data) + self.second)
        self.assertEqual(log.format, LogFormat.LEGACY_SHA1)
        self.assertEqual(len(log.events()), 2)


class TestCryptoAgileLog(unittest.TestCase):
    def setUp(self) -> None:
        self.buf = crypto_agile_log(
            measured_event2(0, b"firmware", TpmEventType.EFI_PLATFORM_FIRMWARE_BLOB),
            measured_event2(7, b"\0" * 4),
        )
        self.log = EventLog(self.buf)

    def test_format_detection(self):
        self.assertEqual(self.log.format, LogFormat.CRYPTO_AGILE)
        self.assertEqual(self.log.active_algorithms, (TpmAlgorithm.SHA1, TpmAlgorithm.SHA256))
        self.assertEqual(self.log.header.digest_sizes, {TpmAlgorithm.SHA1: 20, TpmAlgorithm.SHA256: 32})
        self.assertEqual(self.log.header.uintn_size, 2)

    def test_records(self):
        spec_id, blob, separator = self.log.events()
        self.assertTrue(spec_id.is_spec_id_event())
        self.assertFalse(blob.is_spec_id_event())
        self.assertEqual(blob.event_type, TpmEventType.EFI_PLATFORM_FIRMWARE_BLOB)
        self.assertEqual(blob.digest(TpmAlgorithm.SHA256), digest(b"firmware"))
        self.assertEqual(blob.digest(TpmAlgorithm.SHA1), digest(b"firmware", TpmAlgorithm.SHA1))
        self.assertIsNone(blob.digest(TpmAlgorithm.SHA384))
        self.assertEqual(separator.pcr_index, 7)
        self.assertEqual(separator.sequence_number, 2)

    def test_restartable(self):
        self.assertEqual(list(self.log), list(self.log))
        self.assertEqual(len(list(self.log)), 3)

    def test_records_are_immutable(self):
        event = self.log.events()[1]
        with self.assertRaises(TypeError):
            event.digests[TpmAlgorithm.SHA1] = b"\0" * 20
        with self.assertRaises(AttributeError):
            event.pcr_index = 3

    def test_unknown_event_type(self):
        log = EventLog(crypto_agile_log(measured_event2(1, b"x", 0x1234)))
        event = log.events()[1]
        self.assertEqual(event.event_type, 0x1234)
        self.assertEqual(event.to_json()["EventType"], "EV_UNKNOWN_0x00001234")

    def test_unknown_algorithm_declared_in_header(self):
        buf = crypto_agile_log(
            pcr_event2(0, TpmEventType.SEPARATOR, {TpmAlgorithm.SHA256: digest(b"a"), 0x0099: b"\x11" * 8}, b"a"),
            algorithms=((TpmAlgorithm.SHA256, 32), (0x0099, 8)))
        event = EventLog(buf).events()[1]
        self.assertEqual(event.digest(0x0099), b"\x11" * 8)

    def test_to_json(self):
        obj = self.log.events()[2].to_json()
        self.assertEqual(obj["PCRIndex"], 7)
        self.assertEqual(obj["EventType"], "EV_SEPARATOR")
        self.assertEqual(obj["DigestCount"], 2)
        self.assertEqual(obj["Digests"][1], {"AlgorithmId": "sha256", "Digest": digest(b"\0" * 4).hex()})
        self.assertEqual(obj["Event"], "00000000")


class TestMalformedLog(unittest.TestCase):
    def test_empty(self):
        with self.assertRaises(MalformedLog) as cm:
            EventLog(b"")
        self.assertEqual(cm.exception.offset, 0)

    def test_truncated_first_record(self):
        with self.assertRaises(MalformedLog):
            EventLog(spec_id_event()[:30])

    def test_truncated_event_data(self):
        good = measured_event2(0, b"good")
        bad = measured_event2(1, b"truncated data")[:-5]
        log = EventLog(crypto_agile_log(good, bad))
        with self.assertRaises(MalformedLog) as cm:
            log.events()
        self.assertEqual(cm.exception.offset, len(spec_id_event()) + len(good))

    def test_event_size_claims_more_than_remains(self):
        record = struct.pack("<III", 0, TpmEventType.SEPARATOR, 1) + struct.pack("<H", TpmAlgorithm.SHA1) + \
            b"\0" * 20 + struct.pack("<I", 1000) + b"\0" * 4
        with self.assertRaises(MalformedLog):
            EventLog(crypto_agile_log(record)).events()

    def test_truncated_digest(self):
        with self.assertRaises(MalformedLog):
            EventLog(crypto_agile_log(measured_event2(0, b"x")[:20])).events()

    def test_truncated_legacy_record(self):
        buf = pcr_event(0, TpmEventType.SEPARATOR, b"\0" * 20, b"\0" * 4)
        with self.assertRaises(MalformedLog) as cm:
            EventLog(buf + buf[:10]).events()
        self.assertEqual(cm.exception.offset, len(buf))

    def test_undeclared_algorithm(self):
        buf = crypto_agile_log(
            pcr_event2(0, TpmEventType.SEPARATOR, {TpmAlgorithm.SHA384: b"\0" * 48}, b""))
        with self.assertRaises(MalformedLog) as cm:
            EventLog(buf).events()
        self.assertIn("sha384", cm.exception.reason)

    def test_header_digest_size_mismatch(self):
        with self.assertRaises(MalformedLog) as cm:
            EventLog(crypto_agile_log(algorithms=((TpmAlgorithm.SHA256, 20),)))
        self.assertEqual(cm.exception.offset, 0)

    def test_header_without_algorithms(self):
        with self.assertRaises(MalformedLog):
            EventLog(crypto_agile_log(algorithms=()))

    def test_is_value_error(self):
        self.assertTrue(issubclass(MalformedLog, ValueError))


class TestValidate(unittest.TestCase):
    def test_matching_digests(self):
        log = EventLog(crypto_agile_log(measured_event2(0, b"\0" * 4), measured_event2(0, b"v2", TpmEventType.S_CRTM_VERSION)))
        self.assertEqual(log.validate(), [])

    def test_tampered_digest(self):
        tampered = pcr_event2(4, TpmEventType.SEPARATOR,
                              {TpmAlgorithm.SHA1: digest(b"\0" * 4, TpmAlgorithm.SHA1),
                               TpmAlgorithm.SHA256: digest(b"\xff" * 4)}, b"\0" * 4)
        log = EventLog(crypto_agile_log(measured_event2(0, b"\0" * 4), tampered))
        self.assertEqual(log.validate(), [(2, "EV_SEPARATOR", "sha256")])

    def test_events_not_measured_over_their_data_are_skipped(self):
        event = pcr_event2(4, TpmEventType.EFI_BOOT_SERVICES_APPLICATION,
                           {TpmAlgorithm.SHA1: b"\1" * 20, TpmAlgorithm.SHA256: b"\1" * 32}, b"image load")
        self.assertEqual(EventLog(crypto_agile_log(event)).validate(), [])
