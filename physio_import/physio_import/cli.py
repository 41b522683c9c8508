from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional

import typer

from .analyzer import HttpDocumentAnalyzer, OpenAIDocumentAnalyzer, ReplayAnalyzer, document_from_path
from .catalog import load_analysis_result, load_catalog, load_patients
from .config import Settings
from .csv_export import decision_rows, to_csv
from .errors import PipelineError
from .importer import HttpImportClient, ImportClient
from .matching import search_patients
from .sandbox_fs import append_jsonl, ensure_dirs, load_session, resolve_in_sandbox, save_session, write_json
from .schema import STEP_ORDER, ExerciseEdits
from .wizard import ImportWizard

app = typer.Typer(add_completion=False, no_args_is_help=True)

ROOT_OPTION = typer.Option(".", "--root", help="Sandbox root directory")
SESSION_OPTION = typer.Option("default", "--session", help="Session name")


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging")):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _fail(message: str, code: int = 1) -> None:
    typer.echo(f"Error: {message}", err=True)
    raise typer.Exit(code=code)


def _open_wizard(root: str, session: str, **kwargs) -> ImportWizard:
    try:
        state = load_session(root, session)
    except FileNotFoundError as e:
        _fail(str(e))
    return ImportWizard(settings=Settings.from_env(), state=state, **kwargs)


def _make_import_client(settings: Settings) -> ImportClient:
    return HttpImportClient.from_settings(settings)


@app.command("init-sandbox")
def cli_init_sandbox(root: str = ROOT_OPTION):
    dirs = ensure_dirs(root)
    typer.echo(str(dirs["root"]))


@app.command("analyze")
def cli_analyze(
    root: str = ROOT_OPTION,
    session: str = SESSION_OPTION,
    file: Optional[str] = typer.Option(None, "--file", help="Document to analyze"),
    text: Optional[str] = typer.Option(None, "--text", help="Analyze raw text instead of a file"),
    analyzer: str = typer.Option("http", "--analyzer", help="Analysis service: http or openai"),
    replay: Optional[str] = typer.Option(None, "--replay", help="Use a stored analysis result JSON"),
    catalog: Optional[str] = typer.Option(None, "--catalog", help="Existing exercise catalog JSON (openai analyzer)"),
    patient: Optional[str] = typer.Option(None, "--patient", help="Selected patient id"),
    context: Optional[str] = typer.Option(None, "--context", help="Additional context for the analysis"),
):
    """Analyze a document and start a new review session."""
    if not file and not text:
        _fail("--file or --text is required")
    ensure_dirs(root)
    settings = Settings.from_env()
    try:
        if replay:
            service = ReplayAnalyzer(load_analysis_result(replay))
        elif analyzer == "openai":
            service = OpenAIDocumentAnalyzer.from_settings(settings, load_catalog(catalog) if catalog else ())
        elif analyzer == "http":
            service = HttpDocumentAnalyzer.from_settings(settings)
        else:
            _fail("--analyzer must be 'http' or 'openai'")
    except (ValueError, FileNotFoundError) as e:
        _fail(str(e))

    wizard = ImportWizard(analyzer=service, settings=settings)
    wizard.set_patient_id(patient)
    if file:
        try:
            wizard.set_file(document_from_path(file))
        except OSError as e:
            _fail(f"cannot read {file}: {e}")
        ok = wizard.analyze_document(context)
    else:
        ok = wizard.analyze_text(text, context)

    path = save_session(root, session, wizard.state)
    if not ok:
        _fail(wizard.state.error or "analysis failed")
    typer.echo(str(path))


@app.command("patient")
def cli_patient(
    root: str = ROOT_OPTION,
    session: str = SESSION_OPTION,
    patient_id: Optional[str] = typer.Option(None, "--id", help="Patient id to select"),
    clear: bool = typer.Option(False, "--clear", help="Deselect the patient"),
    assign: Optional[bool] = typer.Option(None, "--assign/--no-assign", help="Assign created sets to the patient"),
    patients: Optional[str] = typer.Option(None, "--suggest-from", help="Patients JSON to suggest a match from"),
    search: Optional[str] = typer.Option(None, "--search", help="List patients matching a query (needs --suggest-from)"),
):
    """Select the destination patient, suggest one from the document, or search the patient list."""
    wizard = _open_wizard(root, session)
    if search is not None and not patients:
        _fail("--search needs a patients file (--suggest-from)")
    if patients:
        try:
            options = load_patients(patients)
        except FileNotFoundError as e:
            _fail(str(e))
        if search is not None:
            for p in search_patients(search, options):
                typer.echo("\t".join(v for v in (p.id, p.fullname, p.email) if v))
        else:
            suggestion = wizard.suggested_patient(options)
            typer.echo(json.dumps(suggestion.model_dump() if suggestion else None))
    if patient_id or clear:
        wizard.set_patient_id(None if clear else patient_id)
    if assign is not None:
        wizard.set_assign_sets_to_patient(assign)
    save_session(root, session, wizard.state)


@app.command("decide")
def cli_decide(
    temp_id: str = typer.Argument(..., help="Temp id of the extracted entity"),
    action: str = typer.Argument(..., help="create, reuse or skip"),
    root: str = ROOT_OPTION,
    session: str = SESSION_OPTION,
    kind: str = typer.Option("exercise", "--kind", help="exercise, set or note"),
    reuse_id: Optional[str] = typer.Option(None, "--reuse-id", help="Existing exercise to reuse"),
    name: Optional[str] = typer.Option(None, "--name"),
    description: Optional[str] = typer.Option(None, "--description"),
    content: Optional[str] = typer.Option(None, "--content", help="Edited note content"),
    sets: Optional[int] = typer.Option(None, "--sets"),
    reps: Optional[int] = typer.Option(None, "--reps"),
):
    """Record the operator's decision for one extracted entity."""
    wizard = _open_wizard(root, session)
    try:
        if kind == "exercise":
            changes: dict = {"action": action}
            if reuse_id:
                changes["reuse_exercise_id"] = reuse_id
            edits = {k: v for k, v in {"name": name, "description": description, "sets": sets, "reps": reps}.items() if v is not None}
            if edits:
                current = wizard.state.exercise_decisions.get(temp_id)
                base = current.edited_data.model_dump(exclude_none=True) if current and current.edited_data else {}
                changes["edited_data"] = ExerciseEdits(**{**base, **edits})
            decision = wizard.update_exercise_decision(temp_id, **changes)
        elif kind == "set":
            changes = {"action": action}
            if name is not None:
                changes["edited_name"] = name
            if description is not None:
                changes["edited_description"] = description
            decision = wizard.update_set_decision(temp_id, **changes)
        elif kind == "note":
            changes = {"action": action}
            if content is not None:
                changes["edited_content"] = content
            decision = wizard.update_note_decision(temp_id, **changes)
        else:
            _fail("--kind must be 'exercise', 'set' or 'note'")
    except (PipelineError, ValueError) as e:
        _fail(str(e))
    save_session(root, session, wizard.state)
    typer.echo(json.dumps(decision.to_wire()))


@app.command("bulk")
def cli_bulk(
    mode: str = typer.Argument(..., help="create, skip or matched"),
    root: str = ROOT_OPTION,
    session: str = SESSION_OPTION,
):
    """Apply one action to every exercise, or adopt all suggested matches."""
    wizard = _open_wizard(root, session)
    try:
        if mode == "create":
            wizard.set_all_exercises_create()
        elif mode == "skip":
            wizard.set_all_exercises_skip()
        elif mode == "matched":
            wizard.use_all_matched_exercises()
        else:
            _fail("mode must be 'create', 'skip' or 'matched'")
    except PipelineError as e:
        _fail(str(e))
    save_session(root, session, wizard.state)
    typer.echo(wizard.stats.model_dump_json())


@app.command("list")
def cli_list(
    root: str = ROOT_OPTION,
    session: str = SESSION_OPTION,
    filter: Optional[str] = typer.Option(None, "--filter", help="all, create, reuse, skip or matched"),
):
    """List extracted exercises with their current decision."""
    wizard = _open_wizard(root, session)
    if filter is not None:
        try:
            wizard.set_exercise_filter(filter)
        except ValueError as e:
            _fail(str(e))
        save_session(root, session, wizard.state)
    decisions = wizard.state.exercise_decisions
    for ex in wizard.filtered_exercises:
        d = decisions.get(ex.temp_id)
        action = d.action if d else "skip"
        target = f" -> {d.reuse_exercise_id}" if d and d.reuse_exercise_id else ""
        typer.echo(f"{ex.temp_id}\t{action}{target}\t{ex.name}")


@app.command("stats")
def cli_stats(root: str = ROOT_OPTION, session: str = SESSION_OPTION):
    wizard = _open_wizard(root, session)
    data = wizard.stats.model_dump()
    data["step"] = wizard.state.step
    data["can_proceed"] = wizard.can_proceed
    data["notes_need_patient"] = wizard.notes_need_patient
    typer.echo(json.dumps(data, indent=2))


@app.command("go")
def cli_go(
    target: str = typer.Argument(..., help="next, back or a completed step name"),
    root: str = ROOT_OPTION,
    session: str = SESSION_OPTION,
):
    """Move between wizard steps."""
    wizard = _open_wizard(root, session)
    if target == "next":
        if not wizard.can_proceed:
            _fail(f"cannot leave step '{wizard.state.step}' yet")
        wizard.go_next()
    elif target == "back":
        wizard.go_back()
    elif target in STEP_ORDER:
        if STEP_ORDER.index(target) >= STEP_ORDER.index(wizard.state.step):
            _fail(f"step '{target}' has not been completed")
        wizard.go_to_step(target)
    else:
        _fail(f"unknown step: {target}")
    save_session(root, session, wizard.state)
    typer.echo(wizard.state.step)


@app.command("build-request")
def cli_build_request(
    root: str = ROOT_OPTION,
    session: str = SESSION_OPTION,
    out: Optional[str] = typer.Option(None, "--out", help="Write the request JSON inside the sandbox"),
):
    """Print (or write) the import request the current decisions produce."""
    wizard = _open_wizard(root, session)
    payload = wizard.build_import_request().to_wire()
    if out:
        typer.echo(str(write_json(root, out, payload)))
    else:
        typer.echo(json.dumps(payload, indent=2))


@app.command("import")
def cli_import(root: str = ROOT_OPTION, session: str = SESSION_OPTION):
    """Send the import request to the backend and show the summary."""
    wizard = _open_wizard(root, session)
    settings = wizard.settings
    if wizard.state.step == "review-exercises":
        if not wizard.can_proceed:
            _fail("no exercises selected for import")
        wizard.go_next()
    if wizard.state.step != "review-sets":
        _fail(f"import is only possible from the review steps (current: {wizard.state.step})")
    try:
        wizard.import_client = _make_import_client(settings)
    except ValueError as e:
        _fail(str(e))

    request = wizard.build_import_request()
    result = wizard.execute_import()
    save_session(root, session, wizard.state)
    append_jsonl(root, "logs/imports.jsonl", {
        "session": session,
        "request": request.to_wire(),
        "result": result.to_wire() if result else None,
        "error": wizard.state.error,
    })
    if result is None:
        _fail(wizard.state.error or "import failed", code=2)

    typer.echo(f"{'OK' if result.success else 'FAILED'}: {result.message}")
    typer.echo(
        f"exercises created={result.exercises_created} reused={result.exercises_reused} "
        f"sets={result.exercise_sets_created} notes={result.clinical_notes_created} failed={result.failed_count}"
    )
    for err in result.errors:
        typer.echo(f"  - {err.temp_id + ': ' if err.temp_id else ''}{err.message}")


@app.command("export-csv")
def cli_export_csv(
    root: str = ROOT_OPTION,
    session: str = SESSION_OPTION,
    out: str = typer.Option("exports/decisions.csv", "--out", help="CSV path inside the sandbox"),
):
    """Itemized decisions and import outcome per extracted entity."""
    wizard = _open_wizard(root, session)
    out_path = resolve_in_sandbox(root, out)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    to_csv(decision_rows(wizard.state), str(out_path))
    typer.echo(str(out_path))


@app.command("version")
def cli_version():
    from importlib.metadata import PackageNotFoundError, version as _pkg_version

    try:
        typer.echo(_pkg_version("physio-import"))
    except PackageNotFoundError:
        from . import __version__
        typer.echo(__version__)


if __name__ == "__main__":
    app()
