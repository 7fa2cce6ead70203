import argparse
import asyncio
import json
import os
import sys

from chain_keeper import __version__
from chain_keeper.backup import GitBackup
from chain_keeper.browser import open_chat_page
from chain_keeper.config import CONFIG_PATH, load_config, load_selectors
from chain_keeper.copilot import Copilot
from chain_keeper.errors import ChainKeeperError
from chain_keeper.library import KeyValueStore, PromptLibrary
from chain_keeper.models import CATEGORIES, ReplayPhase
from chain_keeper.service import ServiceClient
from chain_keeper.sites import build_adapters

# ==============================================================================
# Builders
# ==============================================================================


def build_library(system):
    data_dir = system["data_dir"]
    backup = GitBackup(data_dir)
    store = KeyValueStore(os.path.join(data_dir, "library.json"))
    return PromptLibrary(store, backup=backup if backup.enabled else None)


def build_service(system, library):
    return ServiceClient(system["service_url"], api_key_source=library.api_key,
                         timeout=system.get("service_timeout", 60))


async def _with_copilot(args, config, adapters, library, body):
    system = config["system"]
    async with build_service(system, library) as service:
        async with open_chat_page(system, adapters, args.profile_dir) as page:
            copilot = Copilot.for_page(page, adapters, config, library=library, service=service)
            if not copilot.adapter.supported:
                print(f"[Error] {page.url} is not a supported chat site")
                return 1
            try:
                return await body(copilot, page)
            finally:
                copilot.close()


# ==============================================================================
# Commands
# ==============================================================================


async def cmd_watch(args, config, adapters, library):
    poll_interval = config["system"]["poll_interval"]

    async def body(copilot, page):
        await copilot.install()
        print("[Watch] Attached. Press Ctrl-C to stop.")
        while True:
            await asyncio.sleep(poll_interval)
            if page.is_closed():
                print("[Error] Page closed. Exiting.")
                return 0

    return await _with_copilot(args, config, adapters, library, body)


async def cmd_extract(args, config, adapters, library):
    async def body(copilot, page):
        chain = await copilot.extract_chain()
        print(json.dumps([t.to_dict() for t in chain], indent=2, ensure_ascii=False))
        if args.save:
            await copilot.save_chain()
        return 0

    return await _with_copilot(args, config, adapters, library, body)


async def cmd_replay(args, config, adapters, library):
    template = library.get(args.template_id)
    steps = template.steps
    print(f"[Replay] {template.title} ({len(steps)} steps)")

    async def body(copilot, page):
        state = await copilot.replay(steps)
        if state is None:
            return 1
        print(f"[Replay] Finished: {state.phase.value} at step {state.cursor}/{state.total}")
        return 0 if state.phase == ReplayPhase.DONE else 1

    return await _with_copilot(args, config, adapters, library, body)


def cmd_library(args, library):
    if args.library_cmd == "list":
        items = library.list(args.category)
        if not items:
            print("No saved prompts yet")
        for t in items:
            star = "★ " if t.is_favorite else ""
            steps = f" [{len(t.chain_steps or [])} steps]" if t.is_chain else ""
            score = f" {t.score}/100" if t.score else ""
            preview = t.prompt if len(t.prompt) <= 60 else t.prompt[:60] + "..."
            print(f"{t.id}  {star}{t.title} ({t.category}){steps}{score}\n    {preview}")
    elif args.library_cmd == "export":
        library.write_export(args.output, args.ids)
    elif args.library_cmd == "import":
        library.import_file(args.file, replace=args.replace)
    elif args.library_cmd == "delete":
        library.delete(args.template_id)
        print(f"[Library] Deleted {args.template_id}")
    elif args.library_cmd == "favorite":
        state = library.toggle_favorite(args.template_id)
        print(f"[Library] {args.template_id} {'is now' if state else 'is no longer'} a favorite")
    elif args.library_cmd == "push":
        if library.backup is None:
            print("[Warning] GIT_REPO_URL not set. Git backup disabled.")
            return 1
        if not library.backup.push_remote():
            return 1
    return 0


# ==============================================================================
# Entry point
# ==============================================================================


def build_parser():
    parser = argparse.ArgumentParser(prog="chain-keeper",
                                     description="Prompt chain capture and replay for ChatGPT and Claude tabs.")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config", default=CONFIG_PATH, help="path to config.yaml")
    parser.add_argument("--profile-dir", default=None,
                        help="launch a persistent Chromium profile instead of attaching over CDP")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("watch", help="inject controls into the chat tab and serve them")

    p_extract = sub.add_parser("extract", help="print the current conversation chain")
    p_extract.add_argument("--save", action="store_true", help="also save it to the library")

    p_replay = sub.add_parser("replay", help="replay a saved chain in the chat tab")
    p_replay.add_argument("template_id")

    p_key = sub.add_parser("set-key", help="store the API key sent to the scoring service")
    p_key.add_argument("key")

    p_lib = sub.add_parser("library", help="manage saved prompts")
    lib_sub = p_lib.add_subparsers(dest="library_cmd", required=True)
    p_list = lib_sub.add_parser("list")
    p_list.add_argument("--category", default="all", choices=["all"] + CATEGORIES)
    p_export = lib_sub.add_parser("export")
    p_export.add_argument("output")
    p_export.add_argument("--ids", nargs="*", default=None)
    p_import = lib_sub.add_parser("import")
    p_import.add_argument("file")
    p_import.add_argument("--replace", action="store_true", help="replace the library instead of merging")
    for name in ("delete", "favorite"):
        lib_sub.add_parser(name).add_argument("template_id")
    lib_sub.add_parser("push", help="push the git backup of the library")

    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    config = load_config(args.config)
    library = build_library(config["system"])

    try:
        if args.command == "library":
            code = cmd_library(args, library)
        elif args.command == "set-key":
            library.set_api_key(args.key)
            code = 0
        else:
            adapters = build_adapters(load_selectors())
            command = {"watch": cmd_watch, "extract": cmd_extract, "replay": cmd_replay}[args.command]
            code = asyncio.run(command(args, config, adapters, library))
    except ChainKeeperError as e:
        print(f"[Error] {e}")
        code = 1
    except KeyboardInterrupt:
        code = 0
    if args.command == "watch":
        print("[Exit] ChainKeeper stopped.")
    sys.exit(code)
