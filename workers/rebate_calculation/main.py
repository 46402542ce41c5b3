"""Batch worker that imports a period's CSV exports and runs the rebate calculation."""

from __future__ import annotations

import argparse
import logging
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path

from pydantic import ValidationError
from sqlalchemy.orm import Session

from rebates.core.config import Settings, get_settings
from rebates.core.logging import configure_logging
from rebates.obs import initialise_tracing, start_span
from rebates.services.calculator import CalculationEngine, CalculationResult
from rebates.services.importer import CsvImporter, ImportResult, build_transaction_set
from rebates.services.persistence import RebateRepository
from rebates.services.records import RatePeriod, TableId, TableKind
from rebates.services.reference_data import ReferenceDataStore
from rebates.services.reporting import summarize

LOGGER = logging.getLogger(__name__)

RATE_FILE_PREFIXES: dict[TableId, str] = {
    TableId.CARD_NETWORK_MONTHLY: "Visa & MCO Monthly Rebate",
    TableId.CARD_NETWORK_YEARLY: "Visa & MCO Yearly Rebate",
    TableId.PARTNER_PAYMENT_MONTHLY: "PartnerPay_PartnerDirect Monthly Rebate",
    TableId.PARTNER_PAYMENT_YEARLY: "PartnerPay_PartnerDirect Yearly Rebate",
}
LIBRARY_FOLDER = "Library_NIUM"
AIRLINES_FILES = ("AirlinesMCC.csv", "airlines_mcc.csv")
REGION_COUNTRY_FILES = ("RegionCountry.csv", "region_country.csv")
PROVIDER_OVERRIDE_FILES = ("VoyagePrive.csv", "voyage_prive.csv", "voyage_prive_rebates.csv")

EXIT_OK = 0
EXIT_MISSING_FILES = 2


class MissingInputFilesError(RuntimeError):
    """Raised when the folder lacks a file required for the configured period."""

    def __init__(self, missing: Sequence[str]) -> None:
        super().__init__(f"Missing input files: {', '.join(missing)}")
        self.missing = list(missing)


@dataclass(slots=True)
class InputFiles:
    transactions: Path | None = None
    rate_tables: dict[TableId, Path] = field(default_factory=dict)
    airlines: Path | None = None
    region_country: Path | None = None
    provider_overrides: Path | None = None
    missing: list[str] = field(default_factory=list)


def _find_named(folders: Sequence[Path], names: Sequence[str]) -> Path | None:
    for folder in folders:
        for name in names:
            candidate = folder / name
            if candidate.is_file():
                return candidate
    return None


def _find_prefixed(folder: Path, prefix: str) -> Path | None:
    matches = sorted(path for path in folder.glob("*.csv") if path.name.startswith(prefix))
    return matches[0] if matches else None


def locate_input_files(folder: Path, period_label: str, period: RatePeriod) -> InputFiles:
    """Find the transaction export and reference tables for ``period_label`` (``YYYYMM``)."""

    files = InputFiles()
    transactions = folder / f"{period_label}_NIUM_QLIK.csv"
    if transactions.is_file():
        files.transactions = transactions
    else:
        files.missing.append(transactions.name)

    for table_id, prefix in RATE_FILE_PREFIXES.items():
        path = _find_prefixed(folder, prefix)
        if path is not None:
            files.rate_tables[table_id] = path
        elif table_id.period is period:
            files.missing.append(f"{prefix}.csv")

    library_folders = [folder, folder / LIBRARY_FOLDER]
    files.airlines = _find_named(library_folders, AIRLINES_FILES)
    files.region_country = _find_named(library_folders, REGION_COUNTRY_FILES)
    files.provider_overrides = _find_named(library_folders, PROVIDER_OVERRIDE_FILES)
    return files


def _log_import(name: str, result: ImportResult) -> None:
    if result.invalid:
        LOGGER.warning(
            "rows rejected during import",
            extra={"file": name, "invalid_rows": len(result.invalid), "first_errors": result.invalid[0]["errors"]},
        )


def import_reference_data(
    files: InputFiles, importer: CsvImporter, store: ReferenceDataStore, repository: RebateRepository
) -> None:
    """Import every located reference file into ``store`` and the database."""

    for table_id, path in files.rate_tables.items():
        if table_id.kind is TableKind.CARD_NETWORK:
            result = importer.import_card_network(path, table_id.period)
        else:
            result = importer.import_partner_payment(path, table_id.period)
        _log_import(path.name, result)
        store.replace_table(table_id, result.rows)
        repository.replace_reference_table(table_id, result.rows)

    special_cases = []
    if files.region_country is not None:
        result = importer.import_region_country(files.region_country)
        _log_import(files.region_country.name, result)
        special_cases.extend(result.rows)
    if files.provider_overrides is not None:
        result = importer.import_provider_overrides(files.provider_overrides)
        _log_import(files.provider_overrides.name, result)
        special_cases.extend(result.rows)
    if files.region_country is not None or files.provider_overrides is not None:
        store.replace_table(TableId.SPECIAL_CASES, special_cases)
        repository.replace_reference_table(TableId.SPECIAL_CASES, special_cases)

    if files.airlines is not None:
        result = importer.import_airlines(files.airlines)
        _log_import(files.airlines.name, result)
        store.replace_table(TableId.AIRLINES, result.rows)
        repository.replace_reference_table(TableId.AIRLINES, result.rows)


@contextmanager
def _default_session() -> Iterator[Session]:
    from rebates.db.session import get_session, init_db

    init_db()
    with get_session() as session:
        yield session


def run_calculation(
    folder: Path | str,
    *,
    settings: Settings | None = None,
    session: Session | None = None,
) -> CalculationResult:
    """Import the period's files from ``folder``, calculate rebates and store the results."""

    settings = settings or get_settings()
    label = settings.reporting_period_label
    if label is None:
        raise ValueError("reporting_year and reporting_month must be configured")

    folder = Path(folder)
    files = locate_input_files(folder, label, settings.rate_period)
    if files.missing:
        raise MissingInputFilesError(files.missing)

    if session is None:
        with _default_session() as scoped:
            return _run(files, settings, label, scoped)
    result = _run(files, settings, label, session)
    session.commit()
    return result


def _run(files: InputFiles, settings: Settings, label: str, session: Session) -> CalculationResult:
    importer = CsvImporter(generic_partner_provider=settings.generic_partner_provider or "partnerpay")
    repository = RebateRepository(session)
    store = ReferenceDataStore()

    with start_span("rebates.batch_run", reporting_period=label, period=settings.rate_period.value):
        transactions_result = importer.import_transactions(files.transactions)
        _log_import(files.transactions.name, transactions_result)
        transactions = build_transaction_set([transactions_result])
        repository.replace_transactions(transactions)

        import_reference_data(files, importer, store, repository)

        engine = CalculationEngine.from_settings(settings)
        result = engine.calculate_all(transactions, store)
        repository.save_calculation(result, reporting_period=label)

    summary = summarize(result)
    LOGGER.info(
        "rebate calculation stored",
        extra={"reporting_period": label, **summary.to_dict()},
    )
    return result


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for the rebate calculation worker."""

    parser = argparse.ArgumentParser(description="Calculate rebates for one reporting period.")
    parser.add_argument("--folder", type=Path, default=None, help="folder holding the CSV exports")
    parser.add_argument("--year", type=int, default=None)
    parser.add_argument("--month", type=int, default=None)
    parser.add_argument("--period", choices=[period.value for period in RatePeriod], default=None)
    parser.add_argument("--log-level", default=None, help="level for the rebates and workers loggers")
    args = parser.parse_args(argv)

    settings = get_settings()
    configure_logging(settings.logging_config_path, level=args.log_level.upper() if args.log_level else None)
    overrides = {
        key: value
        for key, value in (
            ("reporting_year", args.year),
            ("reporting_month", args.month),
            ("rate_period", RatePeriod(args.period) if args.period else None),
        )
        if value is not None
    }
    if overrides:
        try:
            settings = Settings.model_validate({**settings.model_dump(), **overrides})
        except ValidationError as exc:
            parser.error(f"invalid reporting options: {exc.errors()[0]['msg']}")
    if settings.enable_tracing:
        initialise_tracing(service_name="rebate-calculation-worker")

    try:
        run_calculation(args.folder or settings.data_directory, settings=settings)
    except MissingInputFilesError as exc:
        LOGGER.error("cannot run calculation", extra={"missing_files": exc.missing})
        return EXIT_MISSING_FILES
    return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())
