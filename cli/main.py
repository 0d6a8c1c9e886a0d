from __future__ import annotations

import argparse
import json
import os
import sys
from typing import Any, List, Optional

from agri_ledger import __schema__, __version__
from agri_ledger.errors import AuthorityMismatchError
from agri_ledger.models import OperationResult
from agri_ledger.service import ProvenanceLedger, open_ledger
from agri_ledger.settings import Settings, configure_logging


def settings_for(args) -> Settings:
    """Environment settings, overridden by --out / --authority."""
    base = Settings.load()
    return Settings(
        STATE_DIR=args.out or base.STATE_DIR,
        AUTHORITY=getattr(args, "authority", None) or base.AUTHORITY,
        JOURNAL_ENABLED=base.JOURNAL_ENABLED and not getattr(args, "no_journal", False),
        LOG_LEVEL=base.LOG_LEVEL,
    )

def load_ledger(args) -> ProvenanceLedger:
    st = settings_for(args)
    if not os.path.exists(st.state_path):
        raise SystemExit(f"❌ No ledger state in {st.STATE_DIR}. Run init first.")
    try:
        return open_ledger(st)
    except AuthorityMismatchError as e:
        raise SystemExit(f"❌ {e}")

def report(result: OperationResult, ok_message: str) -> int:
    if not result.ok:
        print(f"❌ {result.error_name} ({int(result.error)}): {result.message}")
        return 1
    print(ok_message)
    return 0

def dump(obj: Any) -> str:
    if hasattr(obj, "model_dump"):
        obj = obj.model_dump(mode="json", by_alias=True)
    return json.dumps(obj, indent=2, sort_keys=True)

def cmd_init(args) -> int:
    st = settings_for(args)
    if not st.AUTHORITY:
        raise SystemExit("❌ --authority (or AGRI_LEDGER_AUTHORITY) is required to initialise a ledger")
    existed = os.path.exists(st.state_path)
    try:
        ledger = open_ledger(st)
    except AuthorityMismatchError as e:
        raise SystemExit(f"❌ {e}")
    if existed:
        print(f"⚠️  Ledger already initialised in {st.STATE_DIR}")
    else:
        print("✅ Ledger initialised")
    print(f"   state: {st.state_path}")
    print(f"   authority: {ledger.authority}")
    print(f"   schema: {__schema__} (agri-ledger {__version__})")
    return 0

def cmd_create(args) -> int:
    ledger = load_ledger(args)
    result = ledger.create_agricultural_record(
        args.actor, args.name, args.volume, args.location, list(args.tag)
    )
    return report(result, f"✅ Record created\n   sequence_id: {result.value}")

def cmd_verify(args) -> int:
    ledger = load_ledger(args)
    result = ledger.verify_asset_authenticity(args.actor, args.sequence_id, args.cultivator)
    code = report(result, "✅ Verification complete")
    if result.ok:
        print(dump(result.value))
    return code

def cmd_transfer(args) -> int:
    ledger = load_ledger(args)
    result = ledger.transfer_asset_ownership(args.actor, args.sequence_id, args.recipient)
    return report(result, f"✅ Record {args.sequence_id} transferred to {args.recipient}")

def cmd_revoke(args) -> int:
    ledger = load_ledger(args)
    result = ledger.revoke_ledger_access(args.actor, args.sequence_id, args.target)
    return report(result, f"✅ Access revoked for {args.target} on record {args.sequence_id}")

def cmd_append_tags(args) -> int:
    ledger = load_ledger(args)
    result = ledger.append_asset_metadata(args.actor, args.sequence_id, list(args.tag))
    code = report(result, "✅ Tags appended")
    if result.ok:
        print(f"   tags: {', '.join(result.value)}")
    return code

def cmd_modify(args) -> int:
    ledger = load_ledger(args)
    result = ledger.modify_asset_record(
        args.actor, args.sequence_id, args.name, args.volume, args.location, list(args.tag)
    )
    return report(result, f"✅ Record {args.sequence_id} updated")

def cmd_purge(args) -> int:
    ledger = load_ledger(args)
    result = ledger.purge_asset_record(args.actor, args.sequence_id)
    return report(result, f"✅ Record {args.sequence_id} purged")

def cmd_restrict(args) -> int:
    ledger = load_ledger(args)
    result = ledger.activate_emergency_restriction(args.actor, args.sequence_id)
    return report(result, f"🛑 Record {args.sequence_id} under emergency restriction")

def cmd_show(args) -> int:
    ledger = load_ledger(args)
    result = ledger.get_record(args.actor, args.sequence_id)
    code = report(result, f"📦 Record {args.sequence_id}")
    if result.ok:
        print(dump(result.value))
    return code

def cmd_verify_journal(args) -> int:
    ledger = load_ledger(args)
    if ledger.journal is None:
        print("⚠️  Journal disabled (AGRI_LEDGER_JOURNAL=false)")
        return 0
    if ledger.journal.verify():
        print("✅ Journal integrity verified")
        print(f"   entries: {len(ledger.journal)}")
        print(f"   tip: {ledger.journal.tip_hash()}")
        return 0
    print("❌ Journal integrity FAILED")
    return 1

def add_fields(p: argparse.ArgumentParser) -> None:
    p.add_argument("--name", required=True, help="Produce identifier (1-64 characters)")
    p.add_argument("--volume", required=True, type=int, help="Production volume (1 to 999,999,999)")
    p.add_argument("--location", required=True, help="Origin location (1-128 characters)")
    p.add_argument("--tag", action="append", default=[], help="One category tag, taken verbatim (repeatable)")

def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="agri-ledger")
    sub = p.add_subparsers(dest="cmd", required=True)

    def command(name: str, help: str, func, actor: bool = True, record: bool = True):
        c = sub.add_parser(name, help=help)
        c.add_argument("--out", help="State directory (default: AGRI_LEDGER_STATE or ./state)")
        c.add_argument("--no-journal", action="store_true", help="Do not write the audit journal")
        if actor:
            c.add_argument("--actor", required=True, help="Calling identity")
        if record:
            c.add_argument("--sequence-id", required=True, type=int)
        c.set_defaults(func=func)
        return c

    # init
    i = command("init", "Initialise ledger state with a protocol authority", cmd_init, actor=False, record=False)
    i.add_argument("--authority", help="Protocol authority identity (fixed once set)")

    # create
    c = command("create", "Register a produce batch", cmd_create, record=False)
    add_fields(c)

    # verify
    v = command("verify", "Verify a record's cultivator", cmd_verify)
    v.add_argument("--cultivator", required=True, help="Expected cultivator identity")

    # transfer
    t = command("transfer", "Transfer record ownership", cmd_transfer)
    t.add_argument("--recipient", required=True)

    # revoke
    r = command("revoke", "Revoke an identity's access grant", cmd_revoke)
    r.add_argument("--target", required=True)

    # append-tags
    a = command("append-tags", "Append category tags", cmd_append_tags)
    a.add_argument("--tag", action="append", default=[], help="One category tag, taken verbatim (repeatable)")

    # modify
    m = command("modify", "Overwrite record fields", cmd_modify)
    add_fields(m)

    command("purge", "Delete a record", cmd_purge)
    command("restrict", "Activate emergency restriction", cmd_restrict)
    command("show", "Show a stored record", cmd_show)
    command("verify-journal", "Verify audit journal integrity", cmd_verify_journal, actor=False, record=False)
    return p

def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(Settings.load())
    return args.func(args)

if __name__ == "__main__":
    sys.exit(main())
