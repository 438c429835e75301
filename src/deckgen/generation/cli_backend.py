"""Subprocess-based card generator for CLI agents."""

from __future__ import annotations

import json
import logging
import os
import shlex
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path

from deckgen.errors import GenerationFailure
from deckgen.generation.contracts import (
    GenerationRequest,
    GenerationResponse,
    load_json,
    parse_cards_payload,
    write_request,
)
from deckgen.generation.failure_classifier import classify_generator_failure
from deckgen.generation.output_fallback import recover_cards_from_stdout
from deckgen.generation.prompts import build_generation_prompt
from deckgen.queue.models import FailureClass

logger = logging.getLogger(__name__)

TIMEOUT_EXIT_CODE = 124


@dataclass(slots=True, frozen=True)
class AttemptWorkdir:
    """Per-attempt file layout under `<root>/<job_id>/attempt-<n>/`."""

    base_dir: Path
    request_file: Path
    prompt_file: Path
    output_file: Path
    stdout_file: Path
    stderr_file: Path

    @classmethod
    def materialize(cls, root: Path, request: GenerationRequest) -> AttemptWorkdir:
        base_dir = root / request.job_id / f"attempt-{request.attempt}"
        input_dir = base_dir / "input"
        output_dir = base_dir / "output"
        input_dir.mkdir(parents=True, exist_ok=True)
        output_dir.mkdir(parents=True, exist_ok=True)
        workdir = cls(
            base_dir=base_dir,
            request_file=input_dir / "request.json",
            prompt_file=input_dir / "prompt.txt",
            output_file=output_dir / "cards.json",
            stdout_file=output_dir / "stdout.log",
            stderr_file=output_dir / "stderr.log",
        )
        workdir.output_file.unlink(missing_ok=True)
        return workdir


class CliCardGenerator:
    """Run a CLI agent command per attempt and read its cards."""

    def __init__(
        self,
        *,
        command_template: str,
        model: str,
        workdir_root: Path,
        transient_exit_codes: tuple[int, ...] = (137, 143),
    ) -> None:
        self.command_template = command_template
        self.model = model
        self.workdir_root = workdir_root
        self.transient_exit_codes = transient_exit_codes

    def generate(self, request: GenerationRequest) -> GenerationResponse:
        workdir = AttemptWorkdir.materialize(self.workdir_root, request)
        write_request(workdir.request_file, request)
        prompt = build_generation_prompt(
            request,
            request_file=workdir.request_file,
            output_file=workdir.output_file,
        )
        workdir.prompt_file.write_text(prompt, "utf-8")

        run_args = build_run_args(
            command_template=self.command_template,
            model=self.model,
            prompt=prompt,
            workdir=workdir,
        )
        env = os.environ.copy()
        env["DECKGEN_JOB_ID"] = request.job_id
        env["DECKGEN_REQUEST_FILE"] = str(workdir.request_file)
        env["DECKGEN_OUTPUT_FILE"] = str(workdir.output_file)
        env["DECKGEN_GENERATOR_MODEL"] = self.model

        logger.debug(
            "Starting generator: job_id=%s attempt=%d command=%s",
            request.job_id,
            request.attempt,
            run_args[0],
        )
        try:
            exit_code, timed_out = _run_subprocess(
                run_args=run_args,
                env=env,
                timeout_seconds=request.timeout_seconds,
                stdout_path=workdir.stdout_file,
                stderr_path=workdir.stderr_file,
            )
        except FileNotFoundError as error:
            raise GenerationFailure(
                f"Generator command not found: {run_args[0]}",
                failure_class=FailureClass.BACKEND_NON_RETRYABLE,
            ) from error
        except OSError as error:
            raise GenerationFailure(
                f"Generator failed to start: {error}",
                failure_class=FailureClass.BACKEND_TRANSIENT,
                transient=True,
            ) from error

        if timed_out:
            raise GenerationFailure(
                f"Generator timed out after {request.timeout_seconds}s",
                failure_class=FailureClass.TIMEOUT,
                transient=True,
            )

        stdout_text = _read_text(workdir.stdout_file)
        if exit_code != 0:
            classification = classify_generator_failure(
                exit_code=exit_code,
                stdout=stdout_text,
                stderr=_read_text(workdir.stderr_file),
                transient_exit_codes=self.transient_exit_codes,
            )
            raise GenerationFailure(
                f"Generator exited with code {exit_code} "
                f"(rule={classification.matched_rule}, pattern={classification.matched_pattern})",
                failure_class=classification.failure_class,
                transient=classification.transient,
            )

        return self._read_response(request=request, workdir=workdir, stdout_text=stdout_text)

    def _read_response(
        self,
        *,
        request: GenerationRequest,
        workdir: AttemptWorkdir,
        stdout_text: str,
    ) -> GenerationResponse:
        metadata: dict[str, object] = {"workdir": str(workdir.base_dir)}
        output_error: str | None = None
        if workdir.output_file.exists():
            try:
                cards = parse_cards_payload(
                    load_json(workdir.output_file),
                    max_cards=request.max_cards,
                )
            except (json.JSONDecodeError, TypeError, ValueError) as error:
                output_error = str(error)
            else:
                metadata["source"] = "output_file"
                return GenerationResponse(cards=cards, metadata=metadata)

        recovered = recover_cards_from_stdout(
            stdout_text=stdout_text,
            max_cards=request.max_cards,
        )
        if recovered is not None:
            metadata["source"] = "stdout"
            logger.info(
                "Recovered %d cards from generator stdout: job_id=%s",
                len(recovered),
                request.job_id,
            )
            return GenerationResponse(cards=recovered, metadata=metadata)

        message = "Generator produced no output file and no recoverable stdout."
        if output_error is not None:
            message = f"Generator output is invalid: {output_error}"
        raise GenerationFailure(
            message,
            failure_class=FailureClass.OUTPUT_INVALID,
        )


def build_run_args(
    *,
    command_template: str,
    model: str,
    prompt: str,
    workdir: AttemptWorkdir,
) -> list[str]:
    """Render a POSIX command template into argv."""

    stripped = command_template.strip()
    if not stripped:
        raise GenerationFailure(
            "Generator command template is empty.",
            failure_class=FailureClass.BACKEND_NON_RETRYABLE,
        )
    try:
        rendered = stripped.format(
            model=shlex.quote(model),
            prompt=shlex.quote(prompt),
            prompt_file=shlex.quote(str(workdir.prompt_file)),
            request_file=shlex.quote(str(workdir.request_file)),
            output_file=shlex.quote(str(workdir.output_file)),
        )
    except (KeyError, IndexError) as error:
        raise GenerationFailure(
            f"Unsupported command template placeholder: {error}",
            failure_class=FailureClass.BACKEND_NON_RETRYABLE,
        ) from error

    argv = shlex.split(rendered)
    if not argv:
        raise GenerationFailure(
            "Generator command template rendered empty command.",
            failure_class=FailureClass.BACKEND_NON_RETRYABLE,
        )
    return argv


def _run_subprocess(
    *,
    run_args: list[str],
    env: dict[str, str],
    timeout_seconds: int,
    stdout_path: Path,
    stderr_path: Path,
) -> tuple[int, bool]:
    with (
        stdout_path.open("w", encoding="utf-8") as stdout_handle,
        stderr_path.open("w", encoding="utf-8") as stderr_handle,
    ):
        process = subprocess.Popen(  # noqa: S603
            run_args,
            env=env,
            stdout=stdout_handle,
            stderr=stderr_handle,
            text=True,
        )
        started = time.monotonic()
        while True:
            returncode = process.poll()
            if returncode is not None:
                return returncode, False
            if time.monotonic() - started >= timeout_seconds:
                _terminate_process(process)
                return TIMEOUT_EXIT_CODE, True
            time.sleep(0.1)


def _terminate_process(process: subprocess.Popen[str]) -> None:
    try:
        process.terminate()
    except OSError:
        return
    try:
        process.wait(timeout=2)
    except subprocess.TimeoutExpired:
        try:
            process.kill()
        except OSError:
            return
        process.wait(timeout=2)


def _read_text(path: Path) -> str:
    if not path.exists():
        return ""
    return path.read_text("utf-8", errors="replace")
