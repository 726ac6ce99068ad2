#!/usr/bin/env python3
"""
xchain-agents CLI

Command-line interface for compiling agent configuration and auditing
validator checkpoints.

Usage:
    xchain-agents <command> [subcommand] [options]

Commands:
    agents      Compile relayer/validator configuration
    validators  Checkpoint consistency checks
    keys        Deterministic key derivation
    matching    Matching list helpers
    config      Tool configuration management

Copyright (c) 2026 Momentum. All rights reserved.
Contact: engineering@momentum.inc
"""

from __future__ import annotations

import argparse
import json
import sys
from enum import Enum
from typing import Any, Dict, List, Optional

from xchain_agents import __version__
from xchain_agents.observability import (
    Layer,
    configure_logging,
    generate_correlation_id,
    get_logger,
    set_correlation_id,
)

logger = get_logger("cli", Layer.CLI)


class OutputFormat(Enum):
    """Output format options."""
    JSON = "json"
    YAML = "yaml"
    TEXT = "text"


class CLIError(Exception):
    """CLI error with exit code."""
    def __init__(self, message: str, exit_code: int = 1):
        super().__init__(message)
        self.exit_code = exit_code


def format_output(data: Any, fmt: OutputFormat = OutputFormat.JSON) -> str:
    """Format data for output."""
    if fmt == OutputFormat.JSON:
        return json.dumps(data, indent=2, default=str)
    elif fmt == OutputFormat.YAML:
        import yaml
        return yaml.safe_dump(data, default_flow_style=False, sort_keys=False)
    return _format_text(data)


def _format_text(data: Any) -> str:
    if isinstance(data, dict):
        return "\n".join(f"{k}: {_format_text(v) if isinstance(v, (dict, list)) else v}" for k, v in data.items())
    if isinstance(data, list):
        return "\n".join(str(item) for item in data)
    return str(data)


def _parse_routers(pairs: List[str]) -> Dict[str, str]:
    routers: Dict[str, str] = {}
    for pair in pairs:
        chain, sep, address = pair.partition("=")
        if not sep or not chain or not address:
            raise CLIError(f"Router must be given as <chain>=<address>, got {pair!r}")
        routers[chain] = address
    return routers


class XChainCLI:
    """Main CLI application."""

    def __init__(self):
        self.parser = argparse.ArgumentParser(
            prog="xchain-agents",
            description="Cross-chain agent configuration compiler and checkpoint auditor",
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )
        self.parser.add_argument(
            "--version", "-V",
            action="version",
            version=f"xchain-agents {__version__}",
        )
        self.parser.add_argument(
            "--format", "-f",
            choices=["json", "yaml", "text"],
            default="json",
            help="Output format (default: json)",
        )
        self.parser.add_argument(
            "--quiet", "-q",
            action="store_true",
            help="Suppress non-essential output",
        )
        self.parser.add_argument("--config", "-c", help="Tool configuration file (YAML)")
        self.parser.add_argument(
            "--log-level",
            choices=["debug", "info", "warning", "error", "critical"],
            help="Override the configured log level",
        )

        self.subparsers = self.parser.add_subparsers(dest="command", help="Commands")
        self._register_commands()
        self.exit_code = 0

    def _register_commands(self) -> None:
        self._register_agents_commands()
        self._register_validators_commands()
        self._register_keys_commands()
        self._register_matching_commands()
        self._register_config_commands()

    def _register_agents_commands(self) -> None:
        agents = self.subparsers.add_parser("agents", help="Compile agent configuration")
        agents_sub = agents.add_subparsers(dest="subcommand")

        def common(cmd: argparse.ArgumentParser, chain_required: bool = True) -> None:
            cmd.add_argument("--env-file", "-e", required=True, help="Environment file (YAML)")
            cmd.add_argument("--context", "-x", required=True, help="Agent context")
            cmd.add_argument("--chain", required=chain_required, help="Chain name")
            cmd.add_argument(
                "--secret",
                action="append",
                default=None,
                help="Treat this secret as existing instead of querying Secret Manager (repeatable)",
            )

        # agents relayer
        common(agents_sub.add_parser("relayer", help="Relayer config for one origin chain"))
        # agents validator
        common(agents_sub.add_parser("validator", help="Validator configs for one chain"))
        # agents values
        values = agents_sub.add_parser("values", help="Full agent values for one or all context chains")
        common(values, chain_required=False)

    def _register_validators_commands(self) -> None:
        validators = self.subparsers.add_parser("validators", help="Validator checkpoint audits")
        validators_sub = validators.add_subparsers(dest="subcommand")

        # validators verify
        verify = validators_sub.add_parser("verify", help="Compare validators' checkpoints")
        verify.add_argument("--env-file", "-e", required=True, help="Environment file (YAML)")
        verify.add_argument("--chain", action="append", help="Only verify this chain (repeatable)")
        verify.add_argument(
            "--unsigned",
            action="store_true",
            default=None,
            help="Read checkpoint buckets without AWS credentials",
        )

    def _register_keys_commands(self) -> None:
        keys = self.subparsers.add_parser("keys", help="Deterministic keys")
        keys_sub = keys.add_subparsers(dest="subcommand")

        # keys derive
        derive = keys_sub.add_parser("derive", help="Derive a deterministic infrastructure key")
        derive.add_argument("--environment", required=True, help="Environment name")
        derive.add_argument(
            "--role", "-r",
            required=True,
            choices=["interchain-account", "test-recipient", "create2-factory"],
            help="Deterministic key role",
        )
        derive.add_argument("--context", "-x", default="hyperlane", help="Deployer key context")
        derive.add_argument("--seed", help="Hex seed to use instead of the deployer key secret")
        derive.add_argument(
            "--show-private-key",
            action="store_true",
            help="Include the derived private key in the output",
        )

    def _register_matching_commands(self) -> None:
        matching = self.subparsers.add_parser("matching", help="Matching lists")
        matching_sub = matching.add_subparsers(dest="subcommand")

        # matching routers
        routers = matching_sub.add_parser("routers", help="Matching list between routers")
        routers.add_argument("--env-file", "-e", help="Environment file with named router sets")
        routers.add_argument("--router-set", help="Router set name in the environment file")
        routers.add_argument(
            "--router",
            action="append",
            default=[],
            help="<chain>=<address> (repeatable)",
        )

    def _register_config_commands(self) -> None:
        config = self.subparsers.add_parser("config", help="Configuration management")
        config_sub = config.add_subparsers(dest="subcommand")

        config_sub.add_parser("show", help="Show current configuration")

        get_cmd = config_sub.add_parser("get", help="Get configuration value")
        get_cmd.add_argument("path", help="Config path (e.g., verifier.max_concurrent_chains)")

        set_cmd = config_sub.add_parser("set", help="Set configuration value")
        set_cmd.add_argument("path", help="Config path")
        set_cmd.add_argument("value", help="New value")

        config_sub.add_parser("validate", help="Validate configuration")
        config_sub.add_parser("schema", help="Export configuration schema")

    def run(self, args: Optional[List[str]] = None) -> int:
        """Run the CLI."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return 0

        set_correlation_id(generate_correlation_id())
        self.exit_code = 0
        try:
            self._configure(parsed)
            fmt = OutputFormat(parsed.format)
            result = self._dispatch(parsed)

            if result is not None:
                print(format_output(result, fmt))

            return self.exit_code

        except CLIError as e:
            if not parsed.quiet:
                print(f"Error: {e}", file=sys.stderr)
            return e.exit_code

        except Exception as e:
            logger.error("Command failed", error_code=type(e).__name__, command=parsed.command, error=str(e))
            if not parsed.quiet:
                print(f"Error: {e}", file=sys.stderr)
            return 1

    def _configure(self, args: argparse.Namespace) -> None:
        from xchain_agents.config import get_config_manager

        mgr = get_config_manager()
        if args.config:
            mgr.load_from_file(args.config)
        else:
            mgr.load_defaults()
        observability = mgr.config.observability
        level = args.log_level or observability.log_level.get()
        if args.quiet and not args.log_level:
            level = "error"
        configure_logging(level=level, fmt=observability.log_format.get())

    def _dispatch(self, args: argparse.Namespace) -> Any:
        """Dispatch command to handler."""
        cmd = args.command
        subcmd = getattr(args, "subcommand", None)

        handler_name = f"_handle_{cmd}_{subcmd}" if subcmd else f"_handle_{cmd}"
        handler = getattr(self, handler_name, None)

        if handler is None:
            raise CLIError(f"Unknown command: {cmd} {subcmd or ''}".strip())

        return handler(args)

    # -------------------------------------------------------------------------
    # Collaborators
    # -------------------------------------------------------------------------

    def _secret_store(self, args: argparse.Namespace):
        from xchain_agents.config import get_config
        from xchain_agents.secret_store import GcloudSecretStore, StaticSecretStore

        if args.secret is not None:
            return StaticSecretStore(args.secret)
        secrets = get_config().secrets
        return GcloudSecretStore(
            gcloud=secrets.gcloud_binary.get(),
            project=secrets.project.get() or None,
        )

    def _cloud(self):
        import boto3

        from xchain_agents.aws import AwsCloudProvider
        from xchain_agents.config import get_config

        profile = get_config().aws.profile.get()
        session = boto3.session.Session(profile_name=profile) if profile else None
        return AwsCloudProvider(session=session)

    def _chain_agent_config(self, args: argparse.Namespace):
        from xchain_agents.agents import ChainAgentConfig
        from xchain_agents.environment import load_environment

        environment = load_environment(args.env_file)
        agent_config = environment.agent_config(args.context)
        if args.chain not in agent_config.context_chain_names:
            raise CLIError(f"Chain {args.chain} is not part of context {args.context}")
        return ChainAgentConfig(agent_config, args.chain, self._cloud(), self._secret_store(args))

    # -------------------------------------------------------------------------
    # Agents handlers
    # -------------------------------------------------------------------------

    def _handle_agents_relayer(self, args: argparse.Namespace) -> Any:
        relayer = self._chain_agent_config(args).relayer_config()
        if relayer is None:
            raise CLIError(f"No relayer configured for context {args.context}")
        return relayer.to_dict()

    def _handle_agents_validator(self, args: argparse.Namespace) -> Any:
        validators = self._chain_agent_config(args).validator_configs()
        if validators is None:
            raise CLIError(f"No validators configured for context {args.context}")
        return [v.to_dict() for v in validators]

    def _handle_agents_values(self, args: argparse.Namespace) -> Any:
        from xchain_agents.agents import build_context_values

        if args.chain:
            return self._chain_agent_config(args).agent_values().to_dict()

        from xchain_agents.environment import load_environment

        agent_config = load_environment(args.env_file).agent_config(args.context)
        values = build_context_values(agent_config, self._cloud(), self._secret_store(args))
        return {chain: v.to_dict() for chain, v in values.items()}

    # -------------------------------------------------------------------------
    # Validators handlers
    # -------------------------------------------------------------------------

    def _handle_validators_verify(self, args: argparse.Namespace) -> Any:
        from xchain_agents.aws import S3CheckpointStorage
        from xchain_agents.config import get_config
        from xchain_agents.environment import load_environment
        from xchain_agents.verifier import CheckpointConsistencyVerifier, default_retry_policy

        environment = load_environment(args.env_file)
        validator_sets = dict(environment.validator_sets)
        if args.chain:
            unknown = [c for c in args.chain if c not in validator_sets]
            if unknown:
                raise CLIError(f"No validator set for: {', '.join(unknown)}")
            validator_sets = {c: validator_sets[c] for c in args.chain}

        settings = get_config().verifier
        unsigned = settings.unsigned_requests.get() if args.unsigned is None else args.unsigned
        verifier = CheckpointConsistencyVerifier(
            storage_factory=lambda syncer: S3CheckpointStorage(
                syncer.bucket, syncer.region, unsigned=unsigned
            ),
            retry=default_retry_policy(
                settings.fetch_retry_attempts.get(),
                settings.fetch_retry_base_delay_seconds.get(),
            ),
            max_workers=settings.max_concurrent_candidates.get(),
            max_chains=settings.max_concurrent_chains.get(),
        )

        results = verifier.verify_all(validator_sets)
        output: Dict[str, Any] = {}
        for chain, result in results.items():
            if isinstance(result, Exception):
                self.exit_code = 1
                output[chain] = {"chain": chain, "error": str(result)}
                continue
            if not result.valid:
                self.exit_code = 1
            if not args.quiet:
                for candidate in result.candidates:
                    print(candidate.describe(), file=sys.stderr)
                for failure in result.failures:
                    print(f"Error: {failure}", file=sys.stderr)
            output[chain] = result.to_dict()
        return output

    # -------------------------------------------------------------------------
    # Keys handlers
    # -------------------------------------------------------------------------

    def _handle_keys_derive(self, args: argparse.Namespace) -> Any:
        from xchain_agents.config import get_config
        from xchain_agents.deterministic_keys import (
            DeterministicKeyRole,
            GcloudDeployerKeySource,
            derive_deterministic_key,
            get_deterministic_key,
        )

        role = DeterministicKeyRole[args.role.upper().replace("-", "_")]
        if args.seed:
            key = derive_deterministic_key(args.seed, role)
        else:
            secrets = get_config().secrets
            source = GcloudDeployerKeySource(
                args.context,
                gcloud=secrets.gcloud_binary.get(),
                project=secrets.project.get() or None,
            )
            key = get_deterministic_key(args.environment, role, source)

        result = {
            "environment": args.environment,
            "role": role.name.lower(),
            "path": key.path,
            "address": key.address,
            "publicKey": key.public_key,
        }
        if args.show_private_key:
            result["privateKey"] = key.private_key
        return result

    # -------------------------------------------------------------------------
    # Matching handlers
    # -------------------------------------------------------------------------

    def _handle_matching_routers(self, args: argparse.Namespace) -> Any:
        from xchain_agents.matching import router_matching_list, serialize_matching_list

        routers = _parse_routers(args.router)
        if args.router_set:
            if not args.env_file:
                raise CLIError("--router-set requires --env-file")
            from xchain_agents.environment import load_environment

            environment = load_environment(args.env_file)
            named = environment.routers.get(args.router_set)
            if named is None:
                raise CLIError(f"No router set named {args.router_set}")
            routers = {**named, **routers}
        if len(routers) < 2:
            raise CLIError("At least two routers are required")

        matching_list = router_matching_list(routers)
        return {
            "elements": [e.to_dict() for e in matching_list],
            "count": len(matching_list),
            "serialized": serialize_matching_list(matching_list),
        }

    # -------------------------------------------------------------------------
    # Config handlers
    # -------------------------------------------------------------------------

    def _handle_config_get(self, args: argparse.Namespace) -> Any:
        from xchain_agents.config import get_config_manager
        mgr = get_config_manager()
        return {"path": args.path, "value": mgr.get(args.path)}

    def _handle_config_set(self, args: argparse.Namespace) -> Any:
        from xchain_agents.config import get_config_manager
        mgr = get_config_manager()
        mgr.set(args.path, args.value)
        return {"path": args.path, "value": mgr.get(args.path), "status": "updated"}

    def _handle_config_show(self, args: argparse.Namespace) -> Any:
        from xchain_agents.config import get_config_manager
        return get_config_manager().config.to_dict()

    def _handle_config_validate(self, args: argparse.Namespace) -> Any:
        from xchain_agents.config import get_config_manager
        errors = get_config_manager().validate()
        if errors:
            self.exit_code = 1
        return {"valid": len(errors) == 0, "errors": errors}

    def _handle_config_schema(self, args: argparse.Namespace) -> Any:
        from xchain_agents.config import get_config_manager
        return get_config_manager().export_schema()


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    cli = XChainCLI()
    return cli.run(argv)


if __name__ == "__main__":
    sys.exit(main())
