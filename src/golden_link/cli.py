"""CLI diagnostics for golden-link."""

import json
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

app = typer.Typer(
    name="golden-link",
    help="Record linkage rules and golden-record link diagnostics",
    add_completion=False,
)
console = Console()


def get_config():
    """Load configuration from environment (and a .env file)."""
    from dotenv import load_dotenv

    load_dotenv()

    from .config import LinkConfig

    return LinkConfig()


def _load_rules(rules: Path | None):
    from .exceptions import ConfigurationError
    from .rules import load_rule_set, patient_rule_set

    try:
        return load_rule_set(rules) if rules else patient_rule_set()
    except ConfigurationError as e:
        console.print(f"[red]Invalid rules: {e}[/red]")
        raise typer.Exit(1)


def _read_json(path: Path) -> dict:
    if not path.exists():
        console.print(f"[red]Error: File not found: {path}[/red]")
        raise typer.Exit(1)
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        console.print(f"[red]Error: {path} is not JSON: {e}[/red]")
        raise typer.Exit(1)


def _explain_table(classifier, vector: int) -> Table:
    table = Table(title="Field Matches")
    table.add_column("Bit", style="dim")
    table.add_column("Field")
    table.add_column("Matched")
    for i, detail in enumerate(classifier.explain(vector)):
        table.add_row(
            str(i),
            detail.field_name,
            "[green]YES[/green]" if detail.matched else "[red]NO[/red]",
        )
    return table


def _classification_style(value: str) -> str:
    return {"MATCH": "green", "POSSIBLE_MATCH": "yellow"}.get(value, "red")


@app.command("validate-rules")
def validate_rules(
    rules: Path = typer.Argument(None, help="Rule set JSON file (default: stock patient rules)"),
):
    """Validate a rule set and show its fields and rules."""
    rule_set = _load_rules(rules)

    fields = Table(title=f"Match Fields - {rule_set.name} v{rule_set.version}")
    fields.add_column("Bit", style="dim")
    fields.add_column("Name")
    fields.add_column("Path")
    fields.add_column("Comparator")
    fields.add_column("Weight")
    for i, definition in enumerate(rule_set.match_fields):
        fields.add_row(
            str(i),
            definition.name,
            definition.field_path,
            definition.comparator.value,
            f"{definition.weight:g}",
        )
    console.print(fields)

    table = Table(title="Rules (first match wins)")
    table.add_column("Rule")
    table.add_column("Mask")
    table.add_column("Mode")
    table.add_column("Result")
    for rule in rule_set.compiled_rules():
        table.add_row(rule.label, bin(rule.mask), rule.mode.value, rule.result.value)
    console.print(table)
    console.print(f"[green]Rule set is valid ({rule_set.rule_count} fields)[/green]")


@app.command()
def compare(
    left: Path = typer.Argument(..., help="JSON file of the incoming record"),
    right: Path = typer.Argument(..., help="JSON file of the record to compare with"),
    rules: Path = typer.Option(None, "--rules", "-r", help="Rule set JSON file"),
):
    """Score and classify a pair of JSON records."""
    from .exceptions import ComparatorTypeError
    from .rules import ResourceMatcher

    matcher = ResourceMatcher(_load_rules(rules))
    try:
        outcome = matcher.match(_read_json(left), _read_json(right), label=right.name)
    except ComparatorTypeError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    console.print(_explain_table(matcher.classifier, outcome.vector))
    style = _classification_style(outcome.classification.value)
    console.print(f"Vector: {outcome.vector} ({bin(outcome.vector)})")
    console.print(f"Score: {outcome.score:.4f} (normalized {outcome.normalized_score:.4f})")
    console.print(f"Classification: [{style}]{outcome.classification.value}[/{style}]")
    rule = matcher.classifier.matching_rule(outcome.vector)
    if rule:
        console.print(f"[dim]Decided by rule: {rule}[/dim]")


@app.command()
def explain(
    vector: str = typer.Argument(..., help="Match vector (decimal, 0b..., or 0x...)"),
    rules: Path = typer.Option(None, "--rules", "-r", help="Rule set JSON file"),
):
    """Show which fields a match vector sets and how it classifies."""
    from .rules import RuleClassifier

    try:
        value = int(vector, 0)
    except ValueError:
        console.print(f"[red]Error: Not a vector: {vector}[/red]")
        raise typer.Exit(1)
    if value < 0:
        console.print("[red]Error: Vectors are non-negative[/red]")
        raise typer.Exit(1)

    classifier = RuleClassifier(_load_rules(rules))
    console.print(_explain_table(classifier, value))
    result = classifier.classify(value)
    style = _classification_style(result.value)
    console.print(f"Classification: [{style}]{result.value}[/{style}]")


@app.command()
def links(
    reference: str = typer.Argument(..., help="Record reference, e.g. Patient/12 or Person/3"),
    db: Path = typer.Option(None, "--db", help="SQLite link store (default: GOLDEN_LINK_DB_PATH)"),
):
    """List the links of a source or golden record."""
    from .links import RecordReference, SQLiteLinkStore

    config = get_config()
    try:
        ref = RecordReference.parse(reference)
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    db_path = db or Path(config.db_path)
    if not db_path.exists():
        console.print(f"[red]Error: Link store not found: {db_path}[/red]")
        raise typer.Exit(1)

    store = SQLiteLinkStore(db_path)
    try:
        found = store.find_links_for(ref) + store.find_links_to(ref)
    finally:
        store.close()

    if not found:
        console.print(f"[yellow]No links for {ref}[/yellow]")
        return

    table = Table(title=f"Links of {ref}")
    table.add_column("Source")
    table.add_column("Golden")
    table.add_column("Classification")
    table.add_column("Assurance")
    table.add_column("Score")
    for link in found:
        style = _classification_style(link.classification.value)
        table.add_row(
            str(link.source),
            str(link.golden),
            f"[{style}]{link.classification.value}[/{style}]",
            link.assurance_level.value,
            f"{link.score:.3f}",
        )
    console.print(table)
    console.print(f"[dim]Showing {len(found)} links[/dim]")


if __name__ == "__main__":
    app()
