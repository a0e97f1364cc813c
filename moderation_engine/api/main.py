"""FastAPI application for the moderation engine.

Reviewer-facing and user-facing endpoints:
- reports: submit, review queue, claim, resolve, dismiss, appeal
- content cases: review list, claim, decide, moderate
- violations and account standing
- appeals: pending list, review
- guidelines: active version, publish (admin)

Role checks happen here; the engine enforces ownership and state rules.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import Depends, FastAPI, Query, Request, status
from fastapi.responses import JSONResponse

from moderation_engine.api.auth import get_actor, get_engine, require_admin, require_reviewer
from moderation_engine.api.schemas import (
    AppealCreate, AppealReview, CaseDecide, ContentModerate, ReportCreate, ReportDismiss, ReportReview
)
from moderation_engine.lib.config import EngineSettings
from moderation_engine.lib.errors import (
    Conflict, InvalidAction, InvalidTransition, ModerationError, NotAuthorized, NotFound, UpstreamDegraded
)
from moderation_engine.models.enums import AppealTarget
from moderation_engine.models.guidelines import GuidelineVersion
from moderation_engine.models.user import Actor
from moderation_engine.services.engine import ModerationEngine, build_engine

logger = logging.getLogger(__name__)


ERROR_STATUS = (
    (NotFound, status.HTTP_404_NOT_FOUND),
    (NotAuthorized, status.HTTP_403_FORBIDDEN),
    (Conflict, status.HTTP_409_CONFLICT),
    (InvalidTransition, status.HTTP_409_CONFLICT),
    (InvalidAction, 422),
    (UpstreamDegraded, status.HTTP_503_SERVICE_UNAVAILABLE),
)


def status_for(error: ModerationError) -> int:
    for error_type, code in ERROR_STATUS:
        if isinstance(error, error_type):
            return code
    return status.HTTP_400_BAD_REQUEST


def create_app(engine: Optional[ModerationEngine] = None) -> FastAPI:
    """Build the app. Without an engine, one is built from the environment on startup."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = False
        if getattr(app.state, "engine", None) is None:
            app.state.engine = build_engine(EngineSettings.from_env())
            owned = True
        yield
        if owned:
            app.state.engine.close()

    app = FastAPI(title="Moderation Engine API", version="0.1.0", lifespan=lifespan)
    app.state.engine = engine

    @app.exception_handler(ModerationError)
    async def moderation_error_handler(request: Request, exc: ModerationError) -> JSONResponse:
        code = status_for(exc)
        if code >= 500:
            logger.warning(f"{request.method} {request.url.path} failed upstream: {exc.message}")
        return JSONResponse(status_code=code, content=exc.to_dict())

    _register_routes(app)
    return app


def _register_routes(app: FastAPI) -> None:

    @app.get("/health")
    def health(engine: ModerationEngine = Depends(get_engine)) -> Dict[str, Any]:
        return engine.health()

    # ------------------------------------------------------------------
    # Guidelines
    # ------------------------------------------------------------------

    @app.get("/guidelines")
    def active_guidelines(engine: ModerationEngine = Depends(get_engine)) -> Dict[str, Any]:
        guideline = engine.registry.get_active_version()
        return {"success": True, "guidelines": guideline.model_dump(mode="json")}

    @app.get("/guidelines/{version}")
    def guideline_version(version: str, engine: ModerationEngine = Depends(get_engine)) -> Dict[str, Any]:
        guideline = engine.registry.get_version(version)
        return {"success": True, "guidelines": guideline.model_dump(mode="json")}

    @app.post("/guidelines", status_code=status.HTTP_201_CREATED)
    def publish_guidelines(
        body: GuidelineVersion,
        activate: bool = Query(default=True),
        actor: Actor = Depends(require_admin),
        engine: ModerationEngine = Depends(get_engine),
    ) -> Dict[str, Any]:
        published = engine.registry.publish(body, activate=activate)
        logger.info(f"Guidelines {published.version} published by {actor.id}")
        return {"success": True, "version": published.version, "isActive": published.is_active}

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------

    @app.post("/reports", status_code=status.HTTP_201_CREATED)
    async def submit_report(
        body: ReportCreate,
        actor: Actor = Depends(get_actor),
        engine: ModerationEngine = Depends(get_engine),
    ) -> Dict[str, Any]:
        report = await engine.intake.submit(actor.id, body.to_submission())
        return {
            "success": True,
            "reportId": str(report.id),
            "status": report.status.value,
            "priority": report.priority.value,
        }

    @app.get("/reports/pending")
    def pending_reports(
        limit: int = Query(default=50, ge=1, le=200),
        actor: Actor = Depends(require_reviewer),
        engine: ModerationEngine = Depends(get_engine),
    ) -> Dict[str, Any]:
        items = engine.queue.pending_reports(limit)
        return {"success": True, "reports": [item.to_dict() for item in items]}

    @app.get("/reports/{report_id}")
    def get_report(
        report_id: UUID,
        actor: Actor = Depends(get_actor),
        engine: ModerationEngine = Depends(get_engine),
    ) -> Dict[str, Any]:
        report = engine.intake.get_report(report_id)
        if not actor.is_reviewer and actor.id not in (report.reporter_id, report.content_owner_id):
            raise NotFound(f"Report {report_id} not found")
        return {"success": True, "report": report.model_dump(mode="json")}

    @app.put("/reports/{report_id}/claim")
    def claim_report(
        report_id: UUID,
        actor: Actor = Depends(require_reviewer),
        engine: ModerationEngine = Depends(get_engine),
    ) -> Dict[str, Any]:
        report = engine.intake.start_review(report_id, actor.id)
        return {"success": True, "reportId": str(report.id), "status": report.status.value}

    @app.put("/reports/{report_id}/review")
    def review_report(
        report_id: UUID,
        body: ReportReview,
        actor: Actor = Depends(require_reviewer),
        engine: ModerationEngine = Depends(get_engine),
    ) -> Dict[str, Any]:
        resolution = engine.enforcement.resolve(
            report_id, actor.id, body.action, body.reason, review_notes=body.review_notes
        )
        return {
            "success": True,
            "report": resolution.report.model_dump(mode="json"),
            "violationId": str(resolution.violation.id) if resolution.violation else None,
            "accountStatus": resolution.standing.status.value if resolution.standing else None,
        }

    @app.put("/reports/{report_id}/dismiss")
    def dismiss_report(
        report_id: UUID,
        body: ReportDismiss,
        actor: Actor = Depends(require_reviewer),
        engine: ModerationEngine = Depends(get_engine),
    ) -> Dict[str, Any]:
        report = engine.intake.dismiss(report_id, actor.id, body.reason)
        return {"success": True, "reportId": str(report.id), "status": report.status.value}

    @app.post("/reports/{report_id}/appeal", status_code=status.HTTP_201_CREATED)
    def appeal_report(
        report_id: UUID,
        body: AppealCreate,
        actor: Actor = Depends(get_actor),
        engine: ModerationEngine = Depends(get_engine),
    ) -> Dict[str, Any]:
        appeal = engine.appeals.file_appeal(AppealTarget.REPORT, report_id, actor.id, body.reason)
        return {"success": True, "appeal": appeal.model_dump(mode="json")}

    # ------------------------------------------------------------------
    # Violations and accounts
    # ------------------------------------------------------------------

    @app.get("/violations/user/{user_id}")
    def user_violations(
        user_id: str,
        actor: Actor = Depends(require_reviewer),
        engine: ModerationEngine = Depends(get_engine),
    ) -> Dict[str, Any]:
        history = engine.enforcement.violation_history(user_id)
        return {
            "success": True,
            "userId": user_id,
            "violations": [v.model_dump(mode="json") for v in history.violations],
            "rollingStrikeCount": history.rolling_strikes,
            "standing": history.standing.model_dump(mode="json"),
        }

    @app.post("/violations/{violation_id}/appeal", status_code=status.HTTP_201_CREATED)
    def appeal_violation(
        violation_id: UUID,
        body: AppealCreate,
        actor: Actor = Depends(get_actor),
        engine: ModerationEngine = Depends(get_engine),
    ) -> Dict[str, Any]:
        appeal = engine.appeals.file_appeal(AppealTarget.VIOLATION, violation_id, actor.id, body.reason)
        return {"success": True, "appeal": appeal.model_dump(mode="json")}

    @app.get("/accounts/{user_id}/standing")
    def account_standing(
        user_id: str,
        actor: Actor = Depends(get_actor),
        engine: ModerationEngine = Depends(get_engine),
    ) -> Dict[str, Any]:
        if not actor.is_reviewer and actor.id != user_id:
            raise NotAuthorized("Not allowed to view this account")
        standing = engine.enforcement.account_standing(user_id)
        return {"success": True, "standing": standing.model_dump(mode="json")}

    # ------------------------------------------------------------------
    # Appeals
    # ------------------------------------------------------------------

    @app.get("/appeals/pending")
    def pending_appeals(
        actor: Actor = Depends(require_reviewer),
        engine: ModerationEngine = Depends(get_engine),
    ) -> Dict[str, Any]:
        return {"success": True, "appeals": [p.to_dict() for p in engine.appeals.list_pending_appeals()]}

    @app.put("/appeals/{kind}/{target_id}/review")
    def review_appeal(
        kind: AppealTarget,
        target_id: UUID,
        body: AppealReview,
        actor: Actor = Depends(require_reviewer),
        engine: ModerationEngine = Depends(get_engine),
    ) -> Dict[str, Any]:
        appeal = engine.appeals.review_appeal(kind, target_id, actor.id, body.decision, body.notes)
        return {"success": True, "appeal": appeal.model_dump(mode="json")}

    # ------------------------------------------------------------------
    # Content cases
    # ------------------------------------------------------------------

    @app.get("/content/review")
    def content_review(
        actor: Actor = Depends(require_reviewer),
        engine: ModerationEngine = Depends(get_engine),
    ) -> Dict[str, Any]:
        cases = engine.cases.list_awaiting_review()
        return {"success": True, "cases": [c.model_dump(mode="json") for c in cases]}

    @app.put("/content/{case_id}/claim")
    def claim_case(
        case_id: UUID,
        actor: Actor = Depends(require_reviewer),
        engine: ModerationEngine = Depends(get_engine),
    ) -> Dict[str, Any]:
        case = engine.cases.mark_under_review(case_id, actor.id)
        return {"success": True, "caseId": str(case.id), "status": case.status.value}

    @app.put("/content/{case_id}/moderate")
    def moderate_content(
        case_id: UUID,
        body: ContentModerate,
        actor: Actor = Depends(require_reviewer),
        engine: ModerationEngine = Depends(get_engine),
    ) -> Dict[str, Any]:
        case = engine.cases.moderate(case_id, actor.id, body.action, body.reason)
        return {"success": True, "case": case.model_dump(mode="json")}

    @app.put("/content/{case_id}/decide")
    def decide_content(
        case_id: UUID,
        body: CaseDecide,
        actor: Actor = Depends(require_reviewer),
        engine: ModerationEngine = Depends(get_engine),
    ) -> Dict[str, Any]:
        case = engine.cases.decide(case_id, actor.id, body.decision, body.reason)
        return {"success": True, "case": case.model_dump(mode="json")}

    # ------------------------------------------------------------------
    # Mixed queue
    # ------------------------------------------------------------------

    @app.get("/queue")
    def queue(
        limit: int = Query(default=50, ge=1, le=200),
        actor: Actor = Depends(require_reviewer),
        engine: ModerationEngine = Depends(get_engine),
    ) -> List[Dict[str, Any]]:
        return [item.to_dict() for item in engine.queue.next_batch(limit)]


app = create_app()
