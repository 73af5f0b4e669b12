"""
ModelRelay - Command Line Interface

    modelrelay serve [--host HOST] [--port PORT]
    modelrelay fallback list|show|status|enable|disable|add|remove|rename|
                        toggle|add-entry|remove-entry|move|export|import|reset

Fallback commands edit the configuration file directly (the same file the
server reads at startup). Virtual models are addressed by id or by name.
"""

import argparse
import os
import sys
from pathlib import Path
from typing import List, Optional

from . import __version__
from .core.errors import (
    DuplicateVirtualModelError,
    FallbackEntryNotFoundError,
    InvalidRequestError,
    RelayException,
    VirtualModelNotFoundError,
)
from .fallback.models import FallbackEntry, VirtualModel
from .fallback.settings import FallbackSettingsService
from .fallback.store import JsonFileConfigStore, default_config_path
from .observability.logging import setup_logging


# ============================================================
# Formatting
# ============================================================

def _format_model(model: VirtualModel) -> str:
    state = "enabled" if model.is_enabled else "disabled"
    lines = [f"{model.name} [{model.id}] ({state}, {len(model.fallback_entries)} entries)"]
    for index, entry in enumerate(model.sorted_entries()):
        lines.append(f"  {index}. {entry.display_name} [{entry.id}]")
    return "\n".join(lines)


def _require_model(service: FallbackSettingsService, ref: str) -> VirtualModel:
    model = service.lookup(ref)
    if model is None:
        raise VirtualModelNotFoundError(ref)
    return model


def _resolve_entry(model: VirtualModel, ref: str) -> FallbackEntry:
    """Entry by id, or by its 0-based position in the chain."""
    entry = model.get_entry(ref)
    if entry is not None:
        return entry
    entries = model.sorted_entries()
    if ref.isdigit() and int(ref) < len(entries):
        return entries[int(ref)]
    raise FallbackEntryNotFoundError(model.name, ref)


# ============================================================
# Fallback commands
# ============================================================

def cmd_list(args: argparse.Namespace, service: FallbackSettingsService) -> str:
    config = service.configuration
    if not config.virtual_models:
        return "No virtual models configured."
    return "\n".join(_format_model(m) for m in config.virtual_models)


def cmd_show(args: argparse.Namespace, service: FallbackSettingsService) -> str:
    return _format_model(_require_model(service, args.model))


def cmd_status(args: argparse.Namespace, service: FallbackSettingsService) -> str:
    config = service.configuration
    enabled = sum(1 for m in config.virtual_models if m.is_enabled)
    return "\n".join([
        f"Fallback routing: {'enabled' if config.is_enabled else 'disabled'}",
        f"Virtual models: {len(config.virtual_models)} ({enabled} enabled)",
        f"Config file: {service.store.path}",
    ])


def cmd_enable(args: argparse.Namespace, service: FallbackSettingsService) -> str:
    service.set_enabled(True)
    return "Fallback routing enabled."


def cmd_disable(args: argparse.Namespace, service: FallbackSettingsService) -> str:
    service.set_enabled(False)
    return "Fallback routing disabled."


def cmd_add(args: argparse.Namespace, service: FallbackSettingsService) -> str:
    name = args.name.strip()
    if not name:
        raise InvalidRequestError("Virtual model name cannot be blank", param="name")
    model = service.add_virtual_model(name)
    if model is None:
        raise DuplicateVirtualModelError(name)
    return f"Added virtual model {model.name} [{model.id}]"


def cmd_remove(args: argparse.Namespace, service: FallbackSettingsService) -> str:
    model = _require_model(service, args.model)
    service.remove_virtual_model(model.id)
    return f"Removed virtual model {model.name}"


def cmd_rename(args: argparse.Namespace, service: FallbackSettingsService) -> str:
    model = _require_model(service, args.model)
    if not service.rename_virtual_model(model.id, args.new_name):
        raise DuplicateVirtualModelError(args.new_name)
    return f"Renamed {model.name} to {args.new_name.strip()}"


def cmd_toggle(args: argparse.Namespace, service: FallbackSettingsService) -> str:
    model = _require_model(service, args.model)
    service.toggle_virtual_model(model.id)
    toggled = service.get_virtual_model(model.id)
    return f"{toggled.name} is now {'enabled' if toggled.is_enabled else 'disabled'}"


def cmd_add_entry(args: argparse.Namespace, service: FallbackSettingsService) -> str:
    model = _require_model(service, args.model)
    entry = service.add_fallback_entry(model.id, args.provider, args.model_id)
    if entry is None:
        raise InvalidRequestError("Fallback entry needs a provider and a model id", param="model_id")
    return f"Added {entry.display_name} to {model.name} at priority {entry.priority}"


def cmd_remove_entry(args: argparse.Namespace, service: FallbackSettingsService) -> str:
    model = _require_model(service, args.model)
    entry = _resolve_entry(model, args.entry)
    service.remove_fallback_entry(model.id, entry.id)
    return f"Removed {entry.display_name} from {model.name}"


def cmd_move(args: argparse.Namespace, service: FallbackSettingsService) -> str:
    model = _require_model(service, args.model)
    if not service.move_fallback_entry(model.id, args.from_index, args.to_index):
        raise InvalidRequestError(
            f"Entry index out of range for a chain of {len(model.fallback_entries)}",
            param="from_index",
        )
    return _format_model(service.get_virtual_model(model.id))


def cmd_export(args: argparse.Namespace, service: FallbackSettingsService) -> str:
    document = service.export_configuration()
    if args.output:
        Path(args.output).write_text(document + "\n", encoding="utf-8")
        return f"Exported configuration to {args.output}"
    return document


def cmd_import(args: argparse.Namespace, service: FallbackSettingsService) -> str:
    if args.file == "-":
        text = sys.stdin.read()
    else:
        text = Path(args.file).read_text(encoding="utf-8")
    if not service.import_configuration(text):
        raise InvalidRequestError("Configuration document must be a JSON object")
    return f"Imported {len(service.configuration.virtual_models)} virtual models"


def cmd_reset(args: argparse.Namespace, service: FallbackSettingsService) -> str:
    service.reset_to_defaults()
    return "Fallback configuration reset to defaults."


# ============================================================
# Serve
# ============================================================

def cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    from .config import load_settings

    if args.config:
        os.environ["RELAY_FALLBACK_CONFIG"] = args.config
    settings = load_settings()
    uvicorn.run(
        "modelrelay.server:app",
        host=args.host or settings.host,
        port=args.port or settings.port,
        log_level=settings.log_level.lower(),
    )
    return 0


# ============================================================
# Parser
# ============================================================

def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="modelrelay",
        description="Cross-provider request translation and fallback routing.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--config",
        default=None,
        help="Fallback configuration file (default: $RELAY_FALLBACK_CONFIG or ~/.config/modelrelay/fallback-config.json)",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    serve = commands.add_parser("serve", help="Run the relay server")
    serve.add_argument("--host", default=None)
    serve.add_argument("--port", type=int, default=None)
    serve.set_defaults(runner=cmd_serve)

    fallback = commands.add_parser("fallback", help="Manage virtual models and fallback chains")
    sub = fallback.add_subparsers(dest="fallback_command", required=True)

    sub.add_parser("list", help="List virtual models").set_defaults(handler=cmd_list)
    sub.add_parser("status", help="Show fallback routing status").set_defaults(handler=cmd_status)
    sub.add_parser("enable", help="Enable fallback routing").set_defaults(handler=cmd_enable)
    sub.add_parser("disable", help="Disable fallback routing").set_defaults(handler=cmd_disable)
    sub.add_parser("reset", help="Reset to the default configuration").set_defaults(handler=cmd_reset)

    for name, handler, help_text in (
        ("show", cmd_show, "Show a virtual model and its chain"),
        ("remove", cmd_remove, "Remove a virtual model"),
        ("toggle", cmd_toggle, "Enable or disable a virtual model"),
    ):
        command = sub.add_parser(name, help=help_text)
        command.add_argument("model", help="Virtual model id or name")
        command.set_defaults(handler=handler)

    add = sub.add_parser("add", help="Add a virtual model")
    add.add_argument("name")
    add.set_defaults(handler=cmd_add)

    rename = sub.add_parser("rename", help="Rename a virtual model")
    rename.add_argument("model", help="Virtual model id or name")
    rename.add_argument("new_name")
    rename.set_defaults(handler=cmd_rename)

    add_entry = sub.add_parser("add-entry", help="Append a fallback entry")
    add_entry.add_argument("model", help="Virtual model id or name")
    add_entry.add_argument("provider", help="Provider id, e.g. claude or github-copilot")
    add_entry.add_argument("model_id", help="Provider model id")
    add_entry.set_defaults(handler=cmd_add_entry)

    remove_entry = sub.add_parser("remove-entry", help="Remove a fallback entry")
    remove_entry.add_argument("model", help="Virtual model id or name")
    remove_entry.add_argument("entry", help="Entry id or 0-based position")
    remove_entry.set_defaults(handler=cmd_remove_entry)

    move = sub.add_parser("move", help="Move a fallback entry to a new position")
    move.add_argument("model", help="Virtual model id or name")
    move.add_argument("from_index", type=int)
    move.add_argument("to_index", type=int)
    move.set_defaults(handler=cmd_move)

    export = sub.add_parser("export", help="Print or write the configuration document")
    export.add_argument("--output", "-o", default=None)
    export.set_defaults(handler=cmd_export)

    import_ = sub.add_parser("import", help="Replace the configuration from a file ('-' for stdin)")
    import_.add_argument("file")
    import_.set_defaults(handler=cmd_import)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command == "serve":
        return args.runner(args)

    # Keep stdout for command output
    setup_logging(level=os.getenv("LOG_LEVEL", "WARNING"), json_output=False, stream=sys.stderr)

    path = Path(args.config).expanduser() if args.config else default_config_path()
    service = FallbackSettingsService(JsonFileConfigStore(path))
    try:
        result = args.handler(args, service)
    except RelayException as e:
        print(f"error: {e.error.message}", file=sys.stderr)
        return 1
    except OSError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    print(result)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
