# pof_storage/cli.py
import argparse
import logging
import sys

from .codec import encode
from .errors import ConfigurationError, PofStorageError
from .samples import DEFAULT_CATEGORIES, PROOF_OF_FUN_CONTRACT, sample_event
from .schemas import EventMetadata
from .settings import Settings, get_settings
from .workflow import StorageWorkflow

MENU = """
============================================================
PROOF OF FUN - FILECOIN ONCHAIN CLOUD
============================================================

1. Store event
2. Store Proof of Fun results
3. Store merchandise catalog
4. Download data (by PieceCID)
5. Storage provider info
6. Full workflow
7. Exit
"""


def build_workflow(settings: Settings) -> StorageWorkflow:
    return StorageWorkflow(settings)


def _print_receipt(label: str, receipt) -> None:
    print(f"\n✅ {label} stored")
    print(f"   PieceCID: {receipt.piece_cid}")
    print(f"   Size: {receipt.size} bytes\n")


def prompt_event(workflow: StorageWorkflow) -> None:
    print("\nStore event on Filecoin\n")
    metadata = EventMetadata(
        id=1,
        name=input("Event name: "),
        description=input("Description: "),
        location=input("Location: "),
        start_date=input("Start date (YYYY-MM-DD): "),
        end_date=input("End date (YYYY-MM-DD): "),
        categories=list(DEFAULT_CATEGORIES),
        contract_address=workflow.settings.PROOF_OF_FUN_ADDRESS or PROOF_OF_FUN_CONTRACT,
    )
    _print_receipt("Event", workflow.store_event(metadata))


def download(workflow: StorageWorkflow, piece_cid: str) -> None:
    print("\n⏳ Downloading...")
    document = workflow.fetch(piece_cid)
    print("\n✅ Data downloaded:\n")
    print(encode(document).decode("utf-8"))
    print("")


def show_providers(workflow: StorageWorkflow) -> None:
    providers = workflow.storage_info()
    print(f"\nStorage providers available: {len(providers)}\n")
    for p in providers:
        print(f"   ID: {p.id}")
        print(f"   Name: {p.name}")
        print(f"   Active: {p.active}")
        print(f"   Address: {p.service_provider}")
        print("   ---")


def run_full_workflow(workflow: StorageWorkflow, deposit: bool = True) -> None:
    print("\n🔄 Running full workflow...\n")
    report = workflow.full_workflow(deposit=deposit)
    _print_receipt("Event", report.event)
    _print_receipt("Proof of Fun results", report.results)
    _print_receipt("Merchandise catalog", report.catalog)
    print(f"Total stored: {report.total_bytes} bytes")
    print(f"Verified rating after download: {report.verified.results.overall_rating}\n")


def check_balance(workflow: StorageWorkflow) -> None:
    report = workflow.readiness()
    print(f"\nWallet address: {report.address}")
    print(f"Chain ID: {report.chain_id} (block {report.latest_block})")
    print(f"tFIL:  {report.native_balance}")
    print(f"USDFC: {report.token_balance}")
    print(f"Providers: {report.active_providers}/{report.total_providers} active")
    for hint in report.recommendations():
        print(f"⚠️  {hint}")
    if report.ready:
        print("\n🎉 Ready. Run: pof-storage full-workflow")
    print(f"Explorer: {report.explorer_url}\n")


def menu(workflow: StorageWorkflow) -> None:
    while True:
        print(MENU)
        try:
            choice = input("Choose an option (1-7): ").strip()
        except EOFError:
            choice = "7"

        try:
            if choice == "1":
                prompt_event(workflow)
            elif choice in ("2", "3"):
                print("\nNot available from the menu.")
                print("   Use: pof-storage full-workflow\n")
            elif choice == "4":
                download(workflow, input("PieceCID: "))
            elif choice == "5":
                show_providers(workflow)
            elif choice == "6":
                run_full_workflow(workflow)
            elif choice == "7":
                print("\n👋 Bye!\n")
                return
            else:
                print("\n❌ Invalid option\n")
        except (PofStorageError, ValueError) as e:
            print(f"\n❌ Error: {e}\n")


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(prog="pof-storage", description="Proof of Fun storage on Filecoin")
    sub = parser.add_subparsers(dest="command")
    sub.add_parser("menu", help="Interactive menu (default)")
    sub.add_parser("check-balance", help="Check tFIL/USDFC balances and providers")
    sub.add_parser("upload-event", help="Store the sample event")
    p_download = sub.add_parser("download", help="Download and decode a piece")
    p_download.add_argument("piece_cid")
    p_full = sub.add_parser("full-workflow", help="Deposit, store all documents and verify a download")
    p_full.add_argument("--no-deposit", action="store_true", help="Skip the USDFC deposit")
    args = parser.parse_args(argv)

    try:
        settings = get_settings()
    except ConfigurationError as e:
        print(f"❌ {e}", file=sys.stderr)
        return 1
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    workflow = build_workflow(settings)
    try:
        workflow.initialize()
        command = args.command or "menu"
        if command == "menu":
            menu(workflow)
        elif command == "check-balance":
            check_balance(workflow)
        elif command == "upload-event":
            _print_receipt("Event", workflow.store_event(sample_event()))
        elif command == "download":
            download(workflow, args.piece_cid)
        elif command == "full-workflow":
            run_full_workflow(workflow, deposit=not args.no_deposit)
    except (PofStorageError, ValueError) as e:
        print(f"\n❌ Error: {e}\n", file=sys.stderr)
        return 1
    finally:
        workflow.close()
    return 0


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
