import time
from typing import Dict, Any, List, Optional, Sequence
from datetime import datetime
from enum import Enum
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from lucy.core import schemas
from lucy.core.errors import LucyError, ParseError
from lucy.core.pipeline import extract, fetch, gemini, powerbi, prompts
from lucy.core.security import RequestContext


# -----------------------------------------------------------------------------
# ORCHESTRATOR - Dashboard pipeline
# Purpose: fetch orders -> build prompt -> call Gemini -> extract spec -> publish,
# strictly one after the other, timing every step and stopping at the first failure
# -----------------------------------------------------------------------------


class PipelineStatus(Enum):
    """Pipeline execution status, doubles as the envelope status."""

    SUCCESS = "success"
    ERROR = "error"


class PipelineStep(Enum):
    """Individual pipeline steps."""

    FETCH = "fetch"
    PROMPT = "prompt"
    LLM = "llm"
    EXTRACT = "extract"
    PUBLISH = "publish"


# Configure logging for pipeline
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class PipelineRun:
    """Step logger and stopwatch for one pipeline run."""

    def __init__(self, user_id: int):
        """
        Args:
            user_id: User whose request is being processed.
        """
        self.user_id = user_id
        self.start_time = datetime.now()
        self._started = time.perf_counter()
        self._step_started: Optional[float] = None
        self.timings: Dict[str, float] = {}
        self.warnings: List[str] = []
        self.logs: List[Dict[str, Any]] = []

    def elapsed(self) -> float:
        return round(time.perf_counter() - self._started, 2)

    def log(self, step: PipelineStep, message: str, level: str = "info"):
        """Record a message for the report and mirror it to the console."""
        self.logs.append(
            {
                "timestamp": datetime.now().isoformat(),
                "step": step.value,
                "message": message,
                "level": level,
                "elapsed_seconds": self.elapsed(),
            }
        )

        if level == "error":
            logger.error(f"[User {self.user_id}] {step.value}: {message}")
        elif level == "warning":
            logger.warning(f"[User {self.user_id}] {step.value}: {message}")
        else:
            logger.info(f"[User {self.user_id}] {step.value}: {message}")

    def begin(self, step: PipelineStep, message: str):
        self._step_started = time.perf_counter()
        self.log(step, message)

    def finish(self, step: PipelineStep, message: str):
        started = self._step_started or self._started
        self.timings[step.value] = round(time.perf_counter() - started, 2)
        self._step_started = None
        self.log(step, message)

    def warn(self, step: PipelineStep, message: str):
        self.warnings.append(message)
        self.log(step, message, "warning")

    def failure(self, step: PipelineStep, error: Exception) -> Dict[str, Any]:
        """Report for a run that stopped at `step`, unexpected errors count as 500."""
        message = error.message if isinstance(error, LucyError) else f"Unexpected error: {error}"
        self.log(step, f"Step failed: {message}", "error")
        return {
            "status": PipelineStatus.ERROR.value,
            "step": step.value,
            "message": message,
            "error_type": type(error).__name__,
            "upstream_status": getattr(error, "upstream_status", None),
            "http_status": (
                error.status_code if isinstance(error, LucyError) else LucyError.status_code
            ),
            "elapsed_seconds": self.elapsed(),
            "timings": dict(self.timings),
            "logs": self.logs,
        }

    def summary(self, **extra: Any) -> Dict[str, Any]:
        """Report for a run that went through every step."""
        return {
            "status": PipelineStatus.SUCCESS.value,
            "start_time": self.start_time.isoformat(),
            "total_seconds": self.elapsed(),
            "timings": dict(self.timings),
            "warnings": self.warnings,
            **extra,
            "logs": self.logs,
        }


async def run_dashboard_pipeline(
    context: RequestContext,
    request: str,
    db: AsyncSession,
    llm: gemini.GeminiClient,
    publisher: Optional[powerbi.PowerBIClient] = None,
    publish: bool = False,
    dataset_id: Optional[str] = None,
    history: Optional[Sequence[schemas.ChatTurn]] = None,
) -> Dict[str, Any]:
    """
    Run the dashboard pipeline for one user request.

    Diagnostic mode (publish=False) stops after extraction and only warns
    when the answer holds no usable structure. Publish mode treats that as
    a failure and never calls Power BI with an unparsed answer.

    Args:
        context: Caller identity, its plant scopes the orders
        request: Free-text dashboard request
        db: Database session
        llm: Gemini client
        publisher: Power BI client, required when publish=True
        publish: Push the extracted dashboard to Power BI
        dataset_id: Existing dataset to update instead of creating one
        history: Earlier turns of the conversation, sent before the prompt

    Returns:
        Report dict, "status" is "success" or "error"
    """
    run = PipelineRun(context.user_id)
    step = PipelineStep.FETCH

    try:
        # STEP 1: orders
        run.begin(step, f"Fetching Premium Freight orders (scope={context.scope_key or 'all'})")
        records = await fetch.fetch_orders(db, context.scope_key)
        run.finish(step, f"{len(records)} records fetched")

        # STEP 2: prompt
        step = PipelineStep.PROMPT
        run.begin(step, "Preparing prompt")
        sample = prompts.take_sample(records)
        prompt = prompts.build_dashboard_prompt(len(records), sample, request)
        run.finish(step, f"Prompt ready ({len(prompt)} chars, sample of {len(sample)})")

        # STEP 3: Gemini
        step = PipelineStep.LLM
        run.begin(step, f"Calling Gemini ({len(history or [])} earlier turns)")
        raw_text = await llm.generate(
            prompt,
            temperature=gemini.DASHBOARD_TEMPERATURE,
            max_output_tokens=gemini.DASHBOARD_MAX_TOKENS,
            timeout=gemini.DASHBOARD_TIMEOUT,
            history=history,
        )
        run.finish(step, f"Gemini answered ({len(raw_text)} chars)")

        # STEP 4: structured payload
        step = PipelineStep.EXTRACT
        run.begin(step, "Extracting dashboard structure")
        extraction = extract.extract_dashboard_spec(raw_text)
        if extraction.ok:
            source = "fenced block" if extraction.fenced else "whole response"
            run.finish(step, f"Dashboard structure parsed from {source}")
        elif publish:
            raise ParseError(extraction.error)
        else:
            run.finish(step, "No usable dashboard structure")
            run.warn(step, extraction.error)

        result: Dict[str, Any] = {
            "records_count": len(records),
            "llm_response": raw_text,
            "message": extract.strip_fenced_block(raw_text),
            "dashboard": (
                extraction.spec.model_dump(by_alias=True) if extraction.ok else None
            ),
            "dataset": None,
        }

        # STEP 5: Power BI
        if publish:
            step = PipelineStep.PUBLISH
            if publisher is None:
                raise LucyError("No Power BI publisher configured")
            publish_request = powerbi.publish_request_from_spec(extraction.unwrap(), dataset_id)
            run.begin(step, f"Publishing to Power BI ({publish_request.action})")
            dataset = await publisher.publish(publish_request)
            run.finish(step, f"Dataset {dataset.dataset_id} ready")
            result["dataset"] = dataset.model_dump()

    except LucyError as error:
        return run.failure(step, error)
    except Exception as error:
        logger.exception(f"[User {context.user_id}] Unexpected failure at {step.value}")
        return run.failure(step, error)

    return run.summary(**result)
