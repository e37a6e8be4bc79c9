# SPDX-License-Identifier: MIT
# Copyright (c) 2025-2026 Soroush Yousefpour
"""
Command line interface for Local Refine.

Usage:
    wr                          Settings summary + help (default)
    wr process "text"           Rewrite text with the active profile
    wr process -p notes "text"  Rewrite with a specific profile
    wr process -s "text"        Stream fragments as they arrive
    wr process -                Read the text from stdin
    wr profiles                 List built-in and custom profiles
    wr check                    Is the LLM service reachable?
    wr models                   List models the service offers
    wr config path              Print path to config file
    wr version                  Show version
"""

import dataclasses
import sys
from typing import List, Optional, Tuple

from .config import CONFIG_FILE, get_config
from .engine import SummarizationEngine
from .probe import ConnectivityProbe
from .profiles import ProfileNotFoundError, ProfileStore
from .utils import C_BOLD, C_CYAN, C_DIM, C_GREEN, C_RED, C_RESET, C_YELLOW


def _parse_process_args(args: List[str]) -> Tuple[Optional[str], bool, List[str]]:
    """Split 'wr process' arguments into (profile_id, stream, words)."""
    profile_id: Optional[str] = None
    stream = False
    words: List[str] = []
    i = 0
    while i < len(args):
        arg = args[i]
        if arg in ("-p", "--profile"):
            if i + 1 >= len(args):
                raise ValueError(f"{arg} needs a profile id")
            profile_id = args[i + 1]
            i += 2
            continue
        if arg in ("-s", "--stream"):
            stream = True
        else:
            words.append(arg)
        i += 1
    return profile_id, stream, words


def cmd_process(args: list):
    """Rewrite text and print the result."""
    try:
        profile_id, stream, words = _parse_process_args(args)
    except ValueError as e:
        print(f"{C_RED}{e}{C_RESET}", file=sys.stderr)
        sys.exit(1)

    if words == ["-"] or (not words and not sys.stdin.isatty()):
        text = sys.stdin.read()
    else:
        text = " ".join(words)

    if not text.strip():
        print(f"{C_RED}Usage: wr process [-p PROFILE] [-s] \"text\"{C_RESET}", file=sys.stderr)
        sys.exit(1)

    config = get_config()
    store = ProfileStore.from_config(config)
    profile_id = profile_id or config.active_profile_id

    try:
        profile = store.get(profile_id)
    except ProfileNotFoundError:
        print(f"{C_RED}Unknown profile: {profile_id}{C_RESET}", file=sys.stderr)
        print(f"{C_DIM}Run 'wr profiles' to see what is available.{C_RESET}", file=sys.stderr)
        sys.exit(1)

    on_progress = None
    target_id = profile.id
    if stream and not profile.is_passthrough:
        # Built-ins are immutable, so stream through an in-memory copy
        streaming_copy = dataclasses.replace(profile, id=f"{profile.id}__stream", is_built_in=False, streaming=True)
        store.upsert(streaming_copy)
        target_id = streaming_copy.id

        def on_progress(fragment: str):
            sys.stderr.write(f"{C_DIM}{fragment}{C_RESET}")
            sys.stderr.flush()

    engine = SummarizationEngine(store)
    try:
        result = engine.process(text, target_id, config, on_progress)
    finally:
        engine.close()

    if stream:
        sys.stderr.write("\n")
    print(result)


def cmd_profiles():
    """List all profiles."""
    config = get_config()
    store = ProfileStore.from_config(config)
    profiles = store.list()
    width = max(len(p.id) for p in profiles)
    for p in profiles:
        marker = f"{C_GREEN}●{C_RESET}" if p.id == config.active_profile_id else " "
        kind = f"{C_DIM}built-in{C_RESET}" if p.is_built_in else f"{C_CYAN}custom{C_RESET}  "
        print(f"  {marker} {C_BOLD}{p.id:<{width}}{C_RESET}  {kind}  {p.description}")


def cmd_check():
    """Check LLM service availability."""
    config = get_config()
    probe = ConnectivityProbe(config)
    try:
        ok = probe.check_availability()
    finally:
        probe.close()

    if ok:
        print(f"  {C_GREEN}✓{C_RESET} {config.endpoint} ({config.api_type})")
        return
    print(f"  {C_RED}✗{C_RESET} {config.endpoint} ({config.api_type}) not reachable")
    if config.api_type == "ollama":
        print(f"  {C_DIM}Start with: ollama serve{C_RESET}")
    sys.exit(1)


def cmd_models():
    """List models offered by the LLM service."""
    config = get_config()
    probe = ConnectivityProbe(config)
    try:
        models = probe.list_models()
    finally:
        probe.close()

    if not models:
        print(f"  {C_YELLOW}No models available at {config.endpoint}{C_RESET}")
        return
    for name in models:
        marker = f"{C_GREEN}●{C_RESET}" if name == config.model else " "
        print(f"  {marker} {name}")


def cmd_config(args: list):
    if args and args[0] == "path":
        print(CONFIG_FILE)
        return
    print(f"{C_RED}Usage: wr config path{C_RESET}", file=sys.stderr)
    sys.exit(1)


def cmd_version():
    from . import __version__
    print(f"Local Refine {__version__}")


def _print_help():
    """Print grouped help listing."""
    groups = [
        ("Rewrite", [
            ("wr process \"text\"",     "Rewrite with the active profile"),
            ("wr process -p ID \"text\"", "Rewrite with a specific profile"),
            ("wr process -s \"text\"",  "Stream fragments while rewriting"),
            ("wr profiles",           "List profiles (● = active)"),
        ]),
        ("Service", [
            ("wr check",              "Check the LLM service is reachable"),
            ("wr models",             "List models the service offers"),
        ]),
        ("Settings", [
            ("wr config path",        "Print path to config file"),
            ("wr version",            "Show version"),
        ]),
    ]
    width = max(len(c) for _, cmds in groups for c, _ in cmds)
    for group_name, cmds in groups:
        print(f"  {C_BOLD}{group_name}{C_RESET}")
        for cmd, desc in cmds:
            print(f"    {C_CYAN}{cmd:<{width}}{C_RESET}  {C_DIM}{desc}{C_RESET}")
        print()


def cmd_default():
    config = get_config()
    state = f"{C_GREEN}on{C_RESET}" if config.enabled else f"{C_DIM}off{C_RESET}"
    print()
    print(f"  {C_BOLD}Local Refine{C_RESET}  {state}")
    print(f"  {C_DIM}profile{C_RESET}  {config.active_profile_id}")
    print(f"  {C_DIM}backend{C_RESET}  {config.api_type} · {config.model} · {config.endpoint}")
    print(f"  {C_DIM}config{C_RESET}   {CONFIG_FILE}")
    print()
    _print_help()


def cli_main():
    """Entry point for the wr CLI."""
    args = sys.argv[1:]

    if not args:
        cmd_default()
        return

    cmd = args[0]
    rest = args[1:]

    if cmd == "process":
        cmd_process(rest)
    elif cmd == "profiles":
        cmd_profiles()
    elif cmd == "check":
        cmd_check()
    elif cmd == "models":
        cmd_models()
    elif cmd == "config":
        cmd_config(rest)
    elif cmd == "version":
        cmd_version()
    elif cmd in ("-h", "--help", "help"):
        _print_help()
    else:
        print(f"{C_RED}Unknown command: {cmd}{C_RESET}", file=sys.stderr)
        print(f"{C_DIM}Run 'wr' for usage.{C_RESET}", file=sys.stderr)
        sys.exit(1)
