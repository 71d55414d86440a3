from pathlib import Path
from typing import List, Optional
from typing_extensions import Annotated

import typer
import linkml_runtime
from rich.markup import escape

from refguard.lib.catalog import build_catalog_registry
from refguard.lib.constants import console
from refguard.lib.exceptions import ConfigurationError
from refguard.lib.helpers import (
    configure_logging,
    connect_to_database,
    derive_registry_from_schema,
    ensure_reference_indexes,
    parse_entity_id,
)
from refguard.lib.ReferenceCounter import MongoStore, ReferenceCounter
from refguard.lib.ReferenceRegistry import ReferenceRegistry
from refguard.lib.Settings import ValidationSettings
from refguard.lib.ValidationResult import Outcome
from refguard.lib.Validator import ReferentialIntegrityValidator

app = typer.Typer(
    help="Checks whether MongoDB documents can be deleted without leaving dangling references behind.",
    add_completion=False,  # hides the shell completion options from `--help` output
    rich_markup_mode="markdown",  # enables use of Markdown in docstrings and CLI help
)

# Reference: https://typer.tiangolo.com/tutorial/parameter-types/path/
SchemaOption = Annotated[Optional[Path], typer.Option(
    "--schema",
    exists=True,
    dir_okay=False,
    readable=True,
    resolve_path=True,
    help="Filesystem path at which a LinkML schema YAML file is located. If omitted, the built-in "
         "entity catalog reference graph is used.",
)]
DatabaseNameOption = Annotated[str, typer.Option(
    help="Name of the database.",
)]
MongoUriOption = Annotated[str, typer.Option(
    envvar="MONGO_URI",
    help="Connection string for accessing the MongoDB server. If you have Docker installed, "
         "you can spin up a temporary MongoDB server at the default URI by running: "
         "`$ docker run --rm --detach -p 27017:27017 mongo`",
)]
VerboseOption = Annotated[bool, typer.Option(
    help="Show verbose output.",
)]


def load_registry(schema_file_path: Optional[Path], verbose: bool = False) -> ReferenceRegistry:
    r"""
    Returns the registry derived from the specified LinkML schema or, if none is specified, the built-in one.
    """
    if schema_file_path is None:
        return build_catalog_registry()

    if verbose:
        console.print(f"Schema YAML file: {schema_file_path}")
    schema_view = linkml_runtime.SchemaView(schema_file_path)
    console.print(f"Schema version:         {schema_view.schema.version}")
    console.print(f"LinkML runtime version: {linkml_runtime.__version__}")
    return derive_registry_from_schema(schema_view)


@app.command("references")
def references(
        schema_file_path: SchemaOption = None,
        reference_report_file_path: Annotated[Path, typer.Option(
            "--reference-report",
            dir_okay=False,
            writable=True,
            readable=False,
            resolve_path=True,
            help="Filesystem path at which you want the program to generate its reference report.",
        )] = "references.tsv",
        verbose: VerboseOption = False,
):
    """
    Lists the references that are checked before a parent document is deleted or has its identity changed.
    """
    configure_logging(verbose)
    registry = load_registry(schema_file_path, verbose=verbose)
    console.print(f"Parent types: {len(registry.parent_types)}")
    console.print(f"References: {len(registry)}")
    console.print(registry.as_table())

    console.print(f"Writing reference report: {reference_report_file_path}")
    registry.dump_to_tsv_file(file_path=reference_report_file_path)


@app.command("check")
def check(
        parent_type: Annotated[str, typer.Argument(
            help="Type of the parent entity (e.g. `ProtocolEntity`).",
        )],
        parent_id: Annotated[str, typer.Argument(
            help="Identifier of the parent entity.",
        )],
        schema_file_path: SchemaOption = None,
        database_name: DatabaseNameOption = "EntitiesManagerDb",
        mongo_uri: MongoUriOption = "mongodb://localhost:27017",
        enabled: Annotated[bool, typer.Option(
            "--enabled/--disabled",
            envvar="REFGUARD_ENABLED",
            help="Whether referential integrity validation is enabled.",
        )] = True,
        concurrent: Annotated[bool, typer.Option(
            "--concurrent/--sequential",
            envvar="REFGUARD_CONCURRENT",
            help="Whether to count the references in each collection concurrently.",
        )] = True,
        timeout_ms: Annotated[int, typer.Option(
            envvar="REFGUARD_TIMEOUT_MS",
            min=1,
            help="Number of milliseconds after which the validation is considered to have failed.",
        )] = 5000,
        # Reference: https://typer.tiangolo.com/tutorial/multiple-values/multiple-options/
        skip_dependent: Annotated[Optional[List[str]], typer.Option(
            "--skip-dependent", "--skip",
            help="Dependent entity type whose references you do not want to check. "
                 "Option can be used multiple times.",
        )] = None,
        verbose: VerboseOption = False,
):
    """
    Checks whether the specified parent document can be deleted without leaving dangling references behind.

    Exits with code 0 if it can, 1 if other documents reference it, and 2 if that could not be determined.
    """
    configure_logging(verbose)
    registry = load_registry(schema_file_path, verbose=verbose)
    settings = ValidationSettings(
        enabled=enabled,
        timeout_seconds=timeout_ms / 1000,
        concurrent=concurrent,
        disabled_dependent_types=frozenset([] if skip_dependent is None else skip_dependent),
    )

    if parent_type not in registry:
        console.print(f"❌ [red]Unknown parent type:[/red] {parent_type}")
        raise typer.Exit(code=2)

    if not settings.enabled:
        console.print("⚠️  [yellow][bold]Referential integrity validation is disabled.[/bold][/yellow]")
        raise typer.Exit(code=0)

    # Connect to the MongoDB server and verify the database is accessible.
    mongo_client = connect_to_database(mongo_uri, database_name, verbose=verbose)
    try:
        store = MongoStore(mongo_client.get_database(database_name), max_time_ms=timeout_ms)
        validator = ReferentialIntegrityValidator(registry, ReferenceCounter(store), settings)
        result = validator.validate_deletion(parent_type, parse_entity_id(parent_id))
    except ConfigurationError as error:
        console.print(f"❌ [red]{escape(str(error))}[/red]")
        raise typer.Exit(code=2)
    finally:
        # Close the connection to the MongoDB server.
        mongo_client.close()

    console.print(f"Validation took {result.duration * 1000:.1f}ms")
    if result.outcome is Outcome.INFRASTRUCTURE_ERROR:
        console.print(f"❌ [red]{escape(result.message)}[/red]")
        raise typer.Exit(code=2)
    elif result.outcome is Outcome.BLOCKED:
        console.print(result.as_table())
        console.print(f"⛔ {escape(result.message)}")
        raise typer.Exit(code=1)

    console.print(f"✅ Nothing references {parent_type} {parent_id}")


@app.command("ensure-indexes")
def ensure_indexes(
        schema_file_path: SchemaOption = None,
        database_name: DatabaseNameOption = "EntitiesManagerDb",
        mongo_uri: MongoUriOption = "mongodb://localhost:27017",
        verbose: VerboseOption = False,
):
    """
    Creates an index on each field that holds references, so that checking for references is fast.
    """
    configure_logging(verbose)
    registry = load_registry(schema_file_path, verbose=verbose)

    mongo_client = connect_to_database(mongo_uri, database_name, verbose=verbose)
    try:
        index_names = ensure_reference_indexes(mongo_client.get_database(database_name), registry)
    finally:
        mongo_client.close()

    for index_name in index_names:
        console.print(f"  ✓ {index_name}")
    console.print(f"Indexes ensured: {len(index_names)}")


if __name__ == "__main__":
    app()
