from __future__ import annotations

import asyncio
import json
from pathlib import Path

import typer
import uvicorn

from kestrel.api.app import create_app
from kestrel.config import Settings, get_settings
from kestrel.core.controller import AutomationController
from kestrel.core.embedding_cache import EmbeddingCache
from kestrel.core.profile import load_profile_embedding, replace_resume
from kestrel.db.init import init_database
from kestrel.db.repositories import Repository
from kestrel.db.session import SessionLocal
from kestrel.errors import ProviderUnavailableError
from kestrel.llm.router import LLMRouter
from kestrel.logging_config import configure_logging

app = typer.Typer(help="Kestrel CLI")
profile_app = typer.Typer(help="Manage candidate profiles")
applications_app = typer.Typer(help="Recorded application outcomes")
companies_app = typer.Typer(help="Visited companies")

app.add_typer(profile_app, name="profile")
app.add_typer(applications_app, name="applications")
app.add_typer(companies_app, name="companies")

_INITIALIZED = False


@app.callback()
def main(log_level: str | None = typer.Option(None, "--log-level", help="Override LOG_LEVEL for this command.")) -> None:
    if log_level:
        configure_logging(log_level)


def ensure_initialized() -> None:
    global _INITIALIZED
    if _INITIALIZED:
        return
    init_database()
    _INITIALIZED = True


@app.command("init")
def init_cmd() -> None:
    """Initialize database and data directories."""
    configure_logging()
    result = init_database()
    typer.echo(json.dumps({"ok": True, **result}, indent=2))


@profile_app.command("set")
def profile_set(
    owner: str = typer.Option(..., "--owner"),
    resume: Path = typer.Option(..., "--resume", exists=True, readable=True),
) -> None:
    """Store resume text for an owner and synthesize the persona used for matching."""
    configure_logging()
    ensure_initialized()
    resume_text = resume.read_text(encoding="utf-8")

    with SessionLocal() as db:
        try:
            profile = asyncio.run(replace_resume(Repository(db), owner, resume_text, router=LLMRouter()))
        except ValueError as exc:
            raise typer.BadParameter(str(exc)) from exc
        typer.echo(json.dumps({"owner_id": profile.owner_id, "persona_text": profile.persona_text}, indent=2))


@profile_app.command("show")
def profile_show(owner: str = typer.Option(..., "--owner")) -> None:
    configure_logging()
    ensure_initialized()
    with SessionLocal() as db:
        profile = Repository(db).get_profile(owner)
        if profile is None:
            raise typer.BadParameter(f"no profile for owner {owner}")
        typer.echo(
            json.dumps(
                {
                    "owner_id": profile.owner_id,
                    "has_resume": bool(profile.resume_text),
                    "persona_text": profile.persona_text,
                },
                indent=2,
            )
        )


@app.command("run")
def run_cmd(
    owner: str = typer.Option(..., "--owner"),
    listings_url: str | None = typer.Option(None, "--listings-url"),
    headless: bool | None = typer.Option(None, "--headless/--headed"),
) -> None:
    """Crawl the listings until exhausted, printing log events. Ctrl-C stops the run."""
    configure_logging()
    ensure_initialized()
    settings = get_settings()
    if headless is not None:
        settings = settings.model_copy(update={"browser_headless": headless})

    try:
        status = asyncio.run(_run_automation(settings, owner, listings_url))
    except KeyboardInterrupt:
        typer.echo(json.dumps({"owner_id": owner, "state": "stopped"}, indent=2))
        raise typer.Exit(code=130)
    except ProviderUnavailableError as exc:
        typer.echo(f"Could not build the profile embedding: {exc}", err=True)
        raise typer.Exit(code=1)

    typer.echo(json.dumps(status, indent=2))
    if status["state"] == "failed":
        raise typer.Exit(code=1)


async def _run_automation(settings: Settings, owner_id: str, listings_url: str | None) -> dict:
    from kestrel.browser.driver import PlaywrightDriver

    with SessionLocal() as db:
        repo = Repository(db)
        llm = LLMRouter(settings)
        cache = EmbeddingCache(repo, llm, case_sensitive=settings.embedding_case_sensitive)
        profile = await load_profile_embedding(
            repo,
            owner_id,
            router=llm,
            cache=cache,
            model=settings.embedding_model,
        )
        if profile is None:
            raise typer.BadParameter(f"no profile for owner {owner_id}; run `kestrel profile set` first")

        driver = await PlaywrightDriver(settings).start()
        controller = AutomationController(
            db,
            owner_id=owner_id,
            driver=driver,
            profile=profile,
            llm=llm,
            settings=settings,
            sink=lambda event: typer.echo(json.dumps(event)),
            listings_url=listings_url,
        )
        await controller.start()
        try:
            status = await controller.wait()
        except asyncio.CancelledError:
            await controller.stop()
            raise
        return status.model_dump(mode="json")


@applications_app.command("list")
def applications_list(
    owner: str = typer.Option(..., "--owner"),
    limit: int = typer.Option(20, "--limit"),
) -> None:
    configure_logging()
    ensure_initialized()
    with SessionLocal() as db:
        rows = Repository(db).list_applications(owner, limit=limit)
        data = [
            {
                "job_title": row.job_title,
                "company_name": row.company_name,
                "job_url": row.job_url,
                "status": row.status,
                "match_score": row.match_score,
                "skip_reason": row.skip_reason,
                "applied_at": row.applied_at.isoformat() if row.applied_at else None,
            }
            for row in rows
        ]
        typer.echo(json.dumps(data, indent=2))


@companies_app.command("list")
def companies_list(
    owner: str = typer.Option(..., "--owner"),
    limit: int = typer.Option(20, "--limit"),
) -> None:
    configure_logging()
    ensure_initialized()
    with SessionLocal() as db:
        rows = Repository(db).list_companies(owner, limit=limit)
        data = [
            {
                "name": row.name,
                "url": row.url,
                "status": row.status,
                "visited_at": row.visited_at.isoformat() if row.visited_at else None,
            }
            for row in rows
        ]
        typer.echo(json.dumps(data, indent=2))


@app.command("serve")
def serve(
    host: str | None = typer.Option(None, "--host"),
    port: int | None = typer.Option(None, "--port"),
) -> None:
    configure_logging()
    ensure_initialized()
    settings = get_settings()
    app_instance = create_app()
    uvicorn.run(app_instance, host=host or settings.app_host, port=port or settings.app_port)
