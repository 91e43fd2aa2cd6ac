"""Command line interface of the service provisioner."""

import argparse
import asyncio
import logging
import sys

from dotenv import load_dotenv
from pydantic import ValidationError

from .config import load_project_definition, load_settings
from .context import ProvisioningContext
from .errors import ProvisioningError, ServiceDefinitionError, UnsupportedProviderError
from .logging_config import setup_logging
from .models.schemas import PROVIDERS, SERVICE_TYPES, ServiceDefinition
from .providers import create_provider
from .workflow import ServiceProvisioner

logger = logging.getLogger(__name__)


class ArgumentParser(argparse.ArgumentParser):
    """Argument parser that exits with status 1 on invalid arguments."""

    def error(self, message: str):
        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")


def build_parser() -> argparse.ArgumentParser:
    parser = ArgumentParser(
        prog="service-provisioner",
        description="Create the repository, pipelines and branch policies of a new service.",
    )
    parser.add_argument("--project", required=True, help="Project the service belongs to (example: FFDC).")
    parser.add_argument("--service", required=True, help="Service name: lowercase, numbers and hyphens.")
    parser.add_argument("--type", required=True, help=f"Service type: {', '.join(SERVICE_TYPES)}.")
    parser.add_argument("--provider", required=True, help=f"Git provider: {' or '.join(PROVIDERS)}.")
    parser.add_argument("--devteam", required=True, help="Team developing the service.")
    parser.add_argument("--srcbranch", default="develop", help="Branch the skeleton is taken from.")
    parser.add_argument("--lib", action="store_true", help="The service is a library (implies --no-deployment).")
    parser.add_argument(
        "--testService", dest="test_service", action="store_true",
        help="The service is a test service (implies --no-deployment).",
    )
    parser.add_argument(
        "--only-update-policies", action="store_true",
        help="Only replace the branch policies of an existing repository.",
    )
    parser.add_argument("--no-policies", action="store_true", help="Do not create branch policies.")
    parser.add_argument("--no-deployment", action="store_true", help="Do not create deployment pipelines.")
    parser.add_argument(
        "--no-master-deployment", action="store_true",
        help="Do not create the master deployment pipeline.",
    )
    return parser


def service_from_args(args: argparse.Namespace) -> ServiceDefinition:
    """
    Validate the requested service.

    Raises:
        ServiceDefinitionError if a field is invalid
        UnsupportedProviderError if the provider is not supported
    """
    if args.provider not in PROVIDERS:
        raise UnsupportedProviderError(
            f"Please specify supported git provider: {' or '.join(PROVIDERS)} (got '{args.provider}')"
        )
    try:
        return ServiceDefinition(
            name=args.service,
            type=args.type,
            project=args.project,
            provider=args.provider,
            dev_team=args.devteam,
            source_branch=args.srcbranch,
            lib=args.lib,
            test_service=args.test_service,
        )
    except ValidationError as e:
        messages = "; ".join(err["msg"].removeprefix("Value error, ") for err in e.errors())
        raise ServiceDefinitionError(messages) from e


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    args = build_parser().parse_args(argv)
    setup_logging()

    try:
        settings = load_settings()
        setup_logging(settings.log_level)
        service = service_from_args(args)
        definition = load_project_definition(settings.project_definitions_dir, service.project, service.dev_team)
        provider = create_provider(service.provider, service.project, settings, definition)
        context = ProvisioningContext(
            service=service,
            settings=settings,
            definition=definition,
            provider=provider,
            no_deployment=args.no_deployment,
            no_master_deployment=args.no_master_deployment,
            no_policies=args.no_policies,
            only_update_policies=args.only_update_policies,
        )
        asyncio.run(ServiceProvisioner(context).run())
    except ProvisioningError as e:
        logger.error("%s", e)
        return 1

    print("DONE")
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
