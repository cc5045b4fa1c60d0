import argparse
import json
import re
import sys
from pathlib import Path

import yaml

from . import default_algorithm
from .component_identifier import ComponentIdentifier, translate
from .event_log import EventLog, MalformedLog
from .pcr_bank import replay_events
from .pci_ids import get_database, load_database
from .tpm_constants import NUM_PCRS, TpmAlgorithm, algorithm_name, event_type_name
from .util import UnsupportedAlgorithm, digest_size, is_supported, to_hex
import tpm_attest.logging as logging

logger = logging.getLogger("tpm_attest")


_HASH_ALG_CHOICES = ["sha1", "sha256", "sha384", "sha512"]


def validate_pcrlist(pcr_list: str) -> list[int]:
    if re.fullmatch(r"\d+(,\d+)*", pcr_list) is None:
        raise argparse.ArgumentTypeError("PCR list must have format '<num>,<num>,...'")

    pcrs = sorted(set(map(int, pcr_list.split(","))))
    if not all(x < NUM_PCRS for x in pcrs):
        raise argparse.ArgumentTypeError(f"Max index for PCR is {NUM_PCRS-1}")
    return pcrs


def load_reference_pcrs(path: Path, alg: TpmAlgorithm) -> dict[int, bytes]:
    """
    Read one bank from the "pcrs" section of tpm2_eventlog's YAML output.

    tpm2_eventlog prints the values as 0x-prefixed numbers, which YAML
    loads as integers, so the leading zeros have to be restored.
    """
    with open(path) as fh:
        doc = yaml.safe_load(fh)
    if not isinstance(doc, dict) or not isinstance(doc.get("pcrs"), dict):
        raise ValueError(f"{path} has no 'pcrs' section")
    bank = doc["pcrs"].get(algorithm_name(alg))
    if not isinstance(bank, dict):
        raise ValueError(f"{path} has no {algorithm_name(alg)} PCR values")

    size = digest_size(alg)
    reference = {}
    for idx, value in bank.items():
        idx = int(idx)
        if not 0 <= idx < NUM_PCRS:
            raise ValueError(f"PCR index {idx} is out of range")
        if isinstance(value, int):
            if value < 0 or value.bit_length() > size * 8:
                raise ValueError(f"PCR {idx} value does not fit a {size}-byte digest")
            reference[idx] = value.to_bytes(size, "big")
        else:
            reference[idx] = bytes.fromhex(str(value).removeprefix("0x"))
            if len(reference[idx]) != size:
                raise ValueError(f"PCR {idx} value is not a {size}-byte digest")
    return reference


def _read_log(path: Path) -> EventLog | None:
    try:
        return EventLog(path.read_bytes())
    except OSError as e:
        logger.error("Unable to read %s: %s", path, e)
    except MalformedLog as e:
        logger.error("Unable to process event log: %s", e)
    return None


def cmd_pcrs(args: argparse.Namespace) -> int:
    log = _read_log(args.log)
    if log is None:
        return 1

    try:
        hash_alg = args.hash_alg or default_algorithm(log)
        if hash_alg not in log.active_algorithms:
            logger.error("The log carries no %s digests", algorithm_name(hash_alg))
            return 1
        if not is_supported(hash_alg):
            raise UnsupportedAlgorithm(hash_alg)
        bank = replay_events(log, [hash_alg])[hash_alg]
    except (MalformedLog, UnsupportedAlgorithm) as e:
        logger.error("Unable to replay event log: %s", e)
        return 1

    # check if the contents of the first 8 PCRs might suggest something is off
    if bank.possibly_unused():
        logger.warning("The %s bank is possibly unused", algorithm_name(hash_alg))
        logger.debug("PCR registers with 0 events: %s",
                     ', '.join(str(idx) for idx, x in enumerate(bank.pcrs) if x.count == 0))

    # if requested, compare the pcr values to the reference ones and exit if different
    if args.compare:
        try:
            reference = load_reference_pcrs(args.compare, hash_alg)
        except (OSError, ValueError, yaml.YAMLError) as e:
            logger.error("Unable to load reference PCR values: %s", e)
            return 1
        logger.info("== Reference vs computed PCR values ==")
        bank.show_compare(reference)
        if bank.compare(reference):
            return 1

    if args.output:
        with open(args.output, "wb") as fh:
            for idx in args.pcr_list:
                fh.write(bank.pcrs[idx].data)
    else:
        logger.info("== Expected %s PCR values ==", algorithm_name(hash_alg))
        for idx in args.pcr_list:
            logger.info("PCR %2d: %s", idx, bank.pcrs[idx])
    return 0


def cmd_events(args: argparse.Namespace) -> int:
    log = _read_log(args.log)
    if log is None:
        return 1

    try:
        events = log.events()
    except MalformedLog as e:
        logger.error("Unable to process event log: %s", e)
        return 1

    if args.json:
        print(json.dumps([event.to_json() for event in events], indent=2))
        return 0

    logger.info("%s log, %d events", log.format.value, len(events))
    for event in events:
        digests = " ".join(f"{algorithm_name(alg)}:{to_hex(value)}" for alg, value in event.digests.items())
        logger.info("%4d  PCR %2d  %-36s %s", event.sequence_number, event.pcr_index,
                    event_type_name(event.event_type), digests)
    return 0


def cmd_validate(args: argparse.Namespace) -> int:
    log = _read_log(args.log)
    if log is None:
        return 1

    try:
        failures = log.validate()
    except MalformedLog as e:
        logger.error("Unable to process event log: %s", e)
        return 1

    for seq, event_type, alg in failures:
        logger.warning("event #%d (%s): %s digest does not match the event data", seq, event_type, alg)
    if failures:
        return 1
    logger.info("All self-measured events match their digests")
    return 0


def cmd_translate(args: argparse.Namespace) -> int:
    try:
        with open(args.components) as fh:
            doc = json.load(fh)
        if not isinstance(doc, list) or not all(isinstance(obj, dict) for obj in doc):
            raise ValueError("expected a JSON list of component objects")
        components = [ComponentIdentifier.from_json(obj) for obj in doc]
    except (OSError, ValueError, KeyError, TypeError) as e:
        logger.error("Unable to load component identifiers from %s: %s", args.components, e)
        return 1

    db = load_database([args.pci_ids]) if args.pci_ids else get_database()
    print(json.dumps([component.to_json() for component in translate(components, db)], indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="tpm_attest",
                                     description="Replay TCG event logs and translate PCI hardware IDs")
    parser.add_argument("-d", "--debug", help="Print lots of debugging statements", action="store_const",
                        dest="loglevel", const=logging.DEBUG, default=logging.INFO)
    parser.add_argument("-v", "--verbose", help="Be verbose", action="store_const", dest="loglevel",
                        const=logging.VERBOSE)
    subparsers = parser.add_subparsers(dest="command", required=True)

    pcrs = subparsers.add_parser("pcrs", help="compute the expected PCR values of a binary event log")
    pcrs.add_argument("log", type=Path, help="binary event log")
    pcrs.add_argument("-H", "--hash-alg", choices=_HASH_ALG_CHOICES,
                      type=str.lower, help="PCR bank to replay (default: sha256 if logged, else sha1)")
    pcrs.add_argument("-L", "--pcr-list", type=validate_pcrlist, default=list(range(NUM_PCRS)),
                      help="comma-separated list of PCR registers")
    pcrs.add_argument("-o", "--output", type=Path, help="write binary PCR values to specified file")
    pcrs.add_argument("--compare", type=Path, metavar="REFERENCE",
                      help="compare computed PCRs against the pcrs section of tpm2_eventlog YAML output")
    pcrs.set_defaults(func=cmd_pcrs)

    events = subparsers.add_parser("events", help="list the events of a binary event log")
    events.add_argument("log", type=Path, help="binary event log")
    events.add_argument("--json", action="store_true", help="print events as JSON")
    events.set_defaults(func=cmd_events)

    validate = subparsers.add_parser("validate", help="check events whose digest covers their own data")
    validate.add_argument("log", type=Path, help="binary event log")
    validate.set_defaults(func=cmd_validate)

    trans = subparsers.add_parser("translate", help="translate PCI ids in a JSON list of component identifiers")
    trans.add_argument("components", type=Path, help="JSON file with a list of component identifiers")
    trans.add_argument("--pci-ids", help="pci.ids database to use instead of the system one")
    trans.set_defaults(func=cmd_translate)

    return parser


def main(argv: list[str] | None = None) -> int:
    logging.basicConfig(stream=sys.stdout, level=logging.INFO)

    args = build_parser().parse_args(argv)
    if getattr(args, "hash_alg", None):
        args.hash_alg = TpmAlgorithm.from_name(args.hash_alg)
    logging.getLogger().setLevel(args.loglevel)

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
