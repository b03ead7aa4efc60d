import argparse

from common.workers.launcher import WorkerLauncher
from packages.billing.workers.billing_sweep_worker import BillingSweepWorker


def setup_cli():
    """Setup CLI arguments and return parsed args with factory parameters."""
    parser = argparse.ArgumentParser(
        description="Billing sweep: renew due subscriptions, then charge due invoices"
    )
    parser.add_argument(
        "--skip-renewals",
        action="store_true",
        help="Only run the auto-payment sweep",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Log level (default: INFO)",
    )

    args = parser.parse_args()

    factory_args = ()
    factory_kwargs = {"skip_renewals": args.skip_renewals}

    return args, factory_args, factory_kwargs


def main():
    """Run one sweep and exit. Meant to be invoked by an external scheduler."""

    WorkerLauncher().run_with_cli(
        worker_factory=BillingSweepWorker,
        worker_name="Billing Sweep",
        cli_setup_func=setup_cli,
    )


if __name__ == "__main__":
    main()
