"""gitlite CLI - run engine operations against a repository.

Usage:
    gitlite [-C PATH] log [--limit N] [--ref REF | --all]
    gitlite [-C PATH] show COMMIT
    gitlite [-C PATH] status
    gitlite [-C PATH] stage PATH... | unstage PATH...
    gitlite [-C PATH] commit -m MESSAGE [-d DESCRIPTION]
    gitlite [-C PATH] branch [list | create NAME [--at COMMIT] | delete NAME]
    gitlite [-C PATH] checkout NAME | checkout --detach COMMIT
    gitlite [-C PATH] reset COMMIT [--soft | --mixed | --hard]
    gitlite [-C PATH] cherry-pick COMMIT | revert COMMIT | merge TARGET
    gitlite [-C PATH] fetch | pull | push [REMOTE] [credentials]
    gitlite [-C PATH] sync-status [REMOTE]
    gitlite [-C PATH] remote [list | add NAME URL | remove NAME | rename OLD NEW | set-url NAME URL]
    gitlite [-C PATH] stash [save [MESSAGE] | list | apply N | drop N]
    gitlite [-C PATH] config [--name NAME] [--email EMAIL]
    gitlite init PATH
    gitlite ssh-keys

Results are printed as JSON on stdout. Failures print the error body as
JSON on stderr and exit with a code derived from the error category.
"""

import argparse
import json
import os
import sys
from pathlib import Path
from typing import Any

from pydantic import BaseModel, SecretStr

from gitlite_engine.config import settings
from gitlite_engine.domain.enums import ResetMode
from gitlite_engine.domain.models import Credentials, HttpsCredentials, SshCredentials
from gitlite_engine.engine import RepositoryEngine
from gitlite_engine.errors import GitliteError, error_body, exit_code_for
from gitlite_engine.observability.logging import configure_logging
from gitlite_engine.services.credentials import detect_ssh_keys
from gitlite_engine.services.history_service import ALL_BRANCHES
from gitlite_engine.services.repo_service import init_repository

PASSWORD_ENV = "GITLITE_REMOTE_PASSWORD"


def _jsonable(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, list):
        return [_jsonable(item) for item in value]
    if isinstance(value, dict):
        return {key: _jsonable(item) for key, item in value.items()}
    if isinstance(value, Path):
        return str(value)
    return value


def _print(value: Any) -> None:
    print(json.dumps(_jsonable(value), indent=2))


def _credentials(args: argparse.Namespace) -> Credentials:
    password = args.password or os.environ.get(PASSWORD_ENV, "")
    return Credentials(
        https=HttpsCredentials(username=args.username or "", password=SecretStr(password)),
        ssh=SshCredentials(
            key_path=args.ssh_key or "",
            passphrase=SecretStr(args.ssh_passphrase) if args.ssh_passphrase else None,
        ),
        username_hint=args.username,
    )


def cmd_log(engine: RepositoryEngine, args: argparse.Namespace) -> Any:
    reference = ALL_BRANCHES if args.all else args.ref
    return engine.list_commits(args.limit, reference)


def cmd_show(engine: RepositoryEngine, args: argparse.Namespace) -> Any:
    return engine.diff_commit(args.commit)


def cmd_status(engine: RepositoryEngine, args: argparse.Namespace) -> Any:
    return engine.get_status()


def cmd_stage(engine: RepositoryEngine, args: argparse.Namespace) -> Any:
    engine.stage_files(args.paths)
    return engine.get_status()


def cmd_unstage(engine: RepositoryEngine, args: argparse.Namespace) -> Any:
    engine.unstage_files(args.paths)
    return engine.get_status()


def cmd_commit(engine: RepositoryEngine, args: argparse.Namespace) -> Any:
    return {"commit": engine.commit(args.message, args.description)}


def cmd_branch(engine: RepositoryEngine, args: argparse.Namespace) -> Any:
    if args.action == "create":
        if args.at:
            return engine.create_branch_from_commit(args.name, args.at)
        return engine.create_branch(args.name)
    if args.action == "delete":
        engine.delete_branch(args.name)
        return {"deleted": args.name}
    return engine.list_branches()


def cmd_checkout(engine: RepositoryEngine, args: argparse.Namespace) -> Any:
    if args.detach:
        return engine.checkout_commit(args.target)
    return engine.checkout_branch(args.target)


def cmd_reset(engine: RepositoryEngine, args: argparse.Namespace) -> Any:
    return engine.reset(args.commit, args.mode)


def cmd_cherry_pick(engine: RepositoryEngine, args: argparse.Namespace) -> Any:
    return {"commit": engine.cherry_pick(args.commit)}


def cmd_revert(engine: RepositoryEngine, args: argparse.Namespace) -> Any:
    return {"commit": engine.revert(args.commit)}


def cmd_merge(engine: RepositoryEngine, args: argparse.Namespace) -> Any:
    return engine.merge(args.target)


def cmd_fetch(engine: RepositoryEngine, args: argparse.Namespace) -> Any:
    engine.fetch(args.remote, _credentials(args))
    return engine.sync_status(args.remote)


def cmd_pull(engine: RepositoryEngine, args: argparse.Namespace) -> Any:
    return engine.pull(args.remote, _credentials(args))


def cmd_push(engine: RepositoryEngine, args: argparse.Namespace) -> Any:
    return {"pushed": engine.push(args.remote, _credentials(args))}


def cmd_sync_status(engine: RepositoryEngine, args: argparse.Namespace) -> Any:
    return engine.sync_status(args.remote)


def cmd_remote(engine: RepositoryEngine, args: argparse.Namespace) -> Any:
    if args.action == "add":
        return engine.add_remote(args.name, args.value)
    if args.action == "remove":
        engine.remove_remote(args.name)
        return {"removed": args.name}
    if args.action == "rename":
        return engine.rename_remote(args.name, args.value)
    if args.action == "set-url":
        return engine.set_remote_url(args.name, args.value)
    return engine.list_remotes()


def cmd_stash(engine: RepositoryEngine, args: argparse.Namespace) -> Any:
    if args.action == "save":
        return engine.stash_save(args.arg)
    if args.action in ("apply", "drop"):
        if args.arg is None or not args.arg.isdigit():
            raise SystemExit(f"stash {args.action} requires a numeric index")
        index = int(args.arg)
        if args.action == "apply":
            engine.stash_apply(index)
        else:
            engine.stash_drop(index)
        return engine.stash_list()
    return engine.stash_list()


def cmd_config(engine: RepositoryEngine, args: argparse.Namespace) -> Any:
    if args.name is not None or args.email is not None:
        return engine.set_user_config(args.name, args.email)
    return engine.get_user_config()


def _add_credential_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("remote", nargs="?", default=None, help="Remote name (default: origin)")
    parser.add_argument("--username", help="HTTPS username")
    parser.add_argument("--password", help=f"HTTPS password or token (or set {PASSWORD_ENV})")
    parser.add_argument("--ssh-key", help="Private key file for SSH remotes")
    parser.add_argument("--ssh-passphrase", help="Passphrase of --ssh-key")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gitlite",
        description="gitlite - version-control operations engine",
    )
    parser.add_argument(
        "-C", dest="path", default=".", help="Repository path (default: current directory)"
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # log
    log_parser = subparsers.add_parser("log", help="List commits")
    log_parser.add_argument("--limit", type=int, default=None, help="Maximum number of commits")
    log_group = log_parser.add_mutually_exclusive_group()
    log_group.add_argument("--ref", default=None, help="Start from this reference")
    log_group.add_argument("--all", action="store_true", help="Walk all local branches")
    log_parser.set_defaults(func=cmd_log)

    # show
    show_parser = subparsers.add_parser("show", help="Diff a commit against its first parent")
    show_parser.add_argument("commit")
    show_parser.set_defaults(func=cmd_show)

    # status / stage / unstage / commit
    status_parser = subparsers.add_parser("status", help="Show pending changes")
    status_parser.set_defaults(func=cmd_status)

    stage_parser = subparsers.add_parser("stage", help="Stage paths")
    stage_parser.add_argument("paths", nargs="+")
    stage_parser.set_defaults(func=cmd_stage)

    unstage_parser = subparsers.add_parser("unstage", help="Unstage paths")
    unstage_parser.add_argument("paths", nargs="+")
    unstage_parser.set_defaults(func=cmd_unstage)

    commit_parser = subparsers.add_parser("commit", help="Commit staged changes")
    commit_parser.add_argument("-m", "--message", required=True)
    commit_parser.add_argument("-d", "--description", default=None)
    commit_parser.set_defaults(func=cmd_commit)

    # branch / checkout
    branch_parser = subparsers.add_parser("branch", help="List, create or delete branches")
    branch_parser.add_argument(
        "action", nargs="?", default="list", choices=["list", "create", "delete"]
    )
    branch_parser.add_argument("name", nargs="?", default="")
    branch_parser.add_argument("--at", default=None, help="Create the branch at this commit")
    branch_parser.set_defaults(func=cmd_branch)

    checkout_parser = subparsers.add_parser("checkout", help="Check out a branch or commit")
    checkout_parser.add_argument("target")
    checkout_parser.add_argument(
        "--detach", action="store_true", help="Treat target as a commit and detach HEAD"
    )
    checkout_parser.set_defaults(func=cmd_checkout)

    # history mutation
    reset_parser = subparsers.add_parser("reset", help="Move the current branch")
    reset_parser.add_argument("commit")
    mode_group = reset_parser.add_mutually_exclusive_group()
    for mode in ResetMode:
        mode_group.add_argument(
            f"--{mode.value}", dest="mode", action="store_const", const=mode.value
        )
    reset_parser.set_defaults(func=cmd_reset, mode=ResetMode.MIXED.value)

    cherry_pick_parser = subparsers.add_parser("cherry-pick", help="Replay a commit on HEAD")
    cherry_pick_parser.add_argument("commit")
    cherry_pick_parser.set_defaults(func=cmd_cherry_pick)

    revert_parser = subparsers.add_parser("revert", help="Commit the inverse of a commit")
    revert_parser.add_argument("commit")
    revert_parser.set_defaults(func=cmd_revert)

    merge_parser = subparsers.add_parser("merge", help="Merge a branch into the current one")
    merge_parser.add_argument("target")
    merge_parser.set_defaults(func=cmd_merge)

    # sync
    for name, func, help_text in (
        ("fetch", cmd_fetch, "Fetch from a remote"),
        ("pull", cmd_pull, "Fast-forward the current branch from a remote"),
        ("push", cmd_push, "Push the current branch"),
    ):
        sync_parser = subparsers.add_parser(name, help=help_text)
        _add_credential_args(sync_parser)
        sync_parser.set_defaults(func=func)

    sync_status_parser = subparsers.add_parser("sync-status", help="Ahead/behind counts")
    sync_status_parser.add_argument("remote", nargs="?", default=None)
    sync_status_parser.set_defaults(func=cmd_sync_status)

    # remotes
    remote_parser = subparsers.add_parser("remote", help="Manage remotes")
    remote_parser.add_argument(
        "action",
        nargs="?",
        default="list",
        choices=["list", "add", "remove", "rename", "set-url"],
    )
    remote_parser.add_argument("name", nargs="?", default="")
    remote_parser.add_argument("value", nargs="?", default="", help="URL or new name")
    remote_parser.set_defaults(func=cmd_remote)

    # stash
    stash_parser = subparsers.add_parser("stash", help="Manage the stash stack")
    stash_parser.add_argument(
        "action", nargs="?", default="list", choices=["save", "list", "apply", "drop"]
    )
    stash_parser.add_argument("arg", nargs="?", default=None, help="Message or index")
    stash_parser.set_defaults(func=cmd_stash)

    # config
    config_parser = subparsers.add_parser("config", help="Show or set user.name / user.email")
    config_parser.add_argument("--name", default=None)
    config_parser.add_argument("--email", default=None)
    config_parser.set_defaults(func=cmd_config)

    # repository-less commands
    init_parser = subparsers.add_parser("init", help="Create an empty repository")
    init_parser.add_argument("target")
    init_parser.add_argument("--initial-branch", default=None)
    init_parser.set_defaults(func=None)

    keys_parser = subparsers.add_parser("ssh-keys", help="List detected SSH private keys")
    keys_parser.set_defaults(func=None)

    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    configure_logging(settings)

    try:
        if args.command == "init":
            _print({"path": init_repository(args.target, args.initial_branch)})
        elif args.command == "ssh-keys":
            _print(detect_ssh_keys(settings))
        else:
            with RepositoryEngine(args.path, settings) as engine:
                _print(args.func(engine, args))
    except GitliteError as e:
        print(json.dumps(error_body(e)), file=sys.stderr)
        return exit_code_for(e)
    return 0


if __name__ == "__main__":
    sys.exit(main())
