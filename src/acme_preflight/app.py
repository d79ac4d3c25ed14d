from typing import Optional

# FastAPI creates the app object defines the different routes
from fastapi import FastAPI, HTTPException, Query
from fastapi.responses import JSONResponse

from reporting.assembler import Assemble

# input validation
from reporting.targets import InvalidTarget, require_address, require_domain

from .cli import VERSION, build_runner
from .config import load_config
from .logs import configure_logging
from .runner import PreflightRunner


def create_app(runner: Optional[PreflightRunner] = None) -> FastAPI:
    """
    Build the API app. Tests pass a runner wired to fake collaborators.
    """
    cfg = load_config()
    if runner is None:
        configure_logging(cfg.log_level)
        runner = build_runner(cfg)
    assembler = Assemble()

    app = FastAPI(title="ACME Preflight Checker")

    @app.get("/health")
    def health():
        return {"status": "ok", "version": VERSION}

    # Check a domain, optionally against one pinned address
    @app.get("/check")
    def check(
        domain: str = Query(..., min_length=1, max_length=255),
        address: Optional[str] = Query(None, max_length=64),
    ):
        try:
            domain = require_domain(domain)
            addresses = [require_address(address)] if address else None
        except InvalidTarget as e:
            raise HTTPException(status_code=400, detail=str(e))

        report = runner.run(domain, addresses=addresses)
        response = assembler.build(
            target=domain,
            checks=report.checks(),
            meta={"version": VERSION, "source": "api", "issuer": cfg.issuer_domain},
        )
        return JSONResponse(content=response)

    return app
