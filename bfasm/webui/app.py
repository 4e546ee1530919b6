from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Response, status
from pydantic import BaseModel, Field

from bfasm.compiler import AsmCompiler
from bfasm.interpreter import DEFAULT_TAPE_SIZE, ExecutionState, StepLimitExceeded, TapeInterpreter
from bfasm.operations import Program
from bfasm.preprocessor import PreprocessError, preprocess
from bfasm.visualizer import VisualizerSession, _to_input_bytes

from .session import SessionRecord, SessionStore

logger = logging.getLogger(__name__)

DEFAULT_MAX_STEPS = 1_000_000
MAX_TAPE_SIZE = 1 << 20


def _state_to_dict(state: ExecutionState) -> dict:
    return {
        "step": state.step,
        "pc": state.pc,
        "kind": state.kind.name if state.kind is not None else None,
        "value": state.value,
        "pointer": state.pointer,
        "tape_start": state.tape_start,
        "tape": list(state.tape),
        "output": list(state.output),
        "program_length": state.program_length,
    }


def _preprocess_or_422(code: str) -> Program:
    try:
        return preprocess(code)
    except PreprocessError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"message": str(exc), "position": exc.position},
        ) from exc


class ProgramRequest(BaseModel):
    code: str


class OperationModel(BaseModel):
    index: int
    kind: str
    value: int


class PreprocessResponse(BaseModel):
    operations: List[OperationModel]


class RunProgramRequest(BaseModel):
    code: str
    input: str = ""
    tape_size: int = Field(default=DEFAULT_TAPE_SIZE, ge=1, le=MAX_TAPE_SIZE)
    max_steps: int = Field(default=DEFAULT_MAX_STEPS, ge=1)
    skip_whitespace: bool = False


class RunProgramResponse(BaseModel):
    output: str
    output_bytes: List[int]
    steps: int


class CompileRequest(BaseModel):
    code: str
    buffer_size: int = Field(default=DEFAULT_TAPE_SIZE, ge=1, le=MAX_TAPE_SIZE)
    comments: bool = True


class CompileResponse(BaseModel):
    assembly: str


class SessionConfiguration(BaseModel):
    code: str = ""
    input: str = ""
    tape_size: int = Field(default=DEFAULT_TAPE_SIZE, ge=1, le=MAX_TAPE_SIZE)
    tape_window: int = Field(default=10, ge=0)
    max_steps: Optional[int] = Field(default=None, ge=1)
    history_limit: int = Field(default=200, ge=1)
    skip_whitespace: bool = False


class SessionState(BaseModel):
    step: int
    pc: int
    kind: Optional[str]
    value: int
    pointer: int
    tape_start: int
    tape: List[int]
    output: List[int]
    program_length: int


class SessionPayload(BaseModel):
    session_id: str
    code: str
    operations: List[OperationModel]
    state: SessionState
    history: List[SessionState]
    finished: bool
    history_size: int
    breakpoints: List[int]
    hit_breakpoint: Optional[int]


class StepRequest(BaseModel):
    count: int = Field(default=1, ge=1)


class StepResponse(BaseModel):
    session_id: str
    states: List[SessionState]
    history: List[SessionState]
    finished: bool
    history_size: int
    breakpoints: List[int]
    hit_breakpoint: Optional[int]


class RunRequest(BaseModel):
    limit: Optional[int] = Field(default=None, ge=1)
    ignore_breakpoints: bool = False


class BreakpointRequest(BaseModel):
    pc: int = Field(ge=0)


def _operation_models(program: Program) -> List[OperationModel]:
    return [
        OperationModel(index=index, kind=operation.kind.name, value=operation.value)
        for index, operation in enumerate(program)
    ]


def create_app(store: Optional[SessionStore] = None) -> FastAPI:
    session_store = store or SessionStore()
    app = FastAPI(title="bfasm API", version="0.1.0")

    def _get_record(session_id: str) -> SessionRecord:
        try:
            return session_store.get(session_id)
        except KeyError as exc:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc

    def _serialize_states(states: List[ExecutionState]) -> List[SessionState]:
        return [SessionState(**_state_to_dict(state)) for state in states]

    def _build_payload(record: SessionRecord) -> SessionPayload:
        session = record.session
        return SessionPayload(
            session_id=record.session_id,
            code=record.code,
            operations=_operation_models(session.program),
            state=SessionState(**_state_to_dict(session.current_state())),
            history=_serialize_states(session.history),
            finished=session.is_finished(),
            history_size=len(session.history),
            breakpoints=session.list_breakpoints(),
            hit_breakpoint=session.hit_breakpoint,
        )

    def _build_step_response(record: SessionRecord, states: List[ExecutionState]) -> StepResponse:
        session = record.session
        return StepResponse(
            session_id=record.session_id,
            states=_serialize_states(states),
            history=_serialize_states(session.history),
            finished=session.is_finished(),
            history_size=len(session.history),
            breakpoints=session.list_breakpoints(),
            hit_breakpoint=session.hit_breakpoint,
        )

    @app.post("/api/preprocess", response_model=PreprocessResponse)
    def preprocess_program(payload: ProgramRequest) -> PreprocessResponse:
        program = _preprocess_or_422(payload.code)
        return PreprocessResponse(operations=_operation_models(program))

    @app.post("/api/run", response_model=RunProgramResponse)
    def run_program(payload: RunProgramRequest) -> RunProgramResponse:
        program = _preprocess_or_422(payload.code)
        interpreter = TapeInterpreter(
            tape_size=payload.tape_size,
            skip_whitespace=payload.skip_whitespace,
        )
        try:
            output = interpreter.run(
                program,
                input_data=_to_input_bytes(payload.input),
                max_steps=payload.max_steps,
            )
        except StepLimitExceeded as exc:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
        logger.info("ran %d operations in %d steps", len(program), interpreter.steps)
        return RunProgramResponse(
            output=output.decode("latin-1"),
            output_bytes=list(output),
            steps=interpreter.steps,
        )

    @app.post("/api/compile", response_model=CompileResponse)
    def compile_program(payload: CompileRequest) -> CompileResponse:
        program = _preprocess_or_422(payload.code)
        compiler = AsmCompiler(buffer_size=payload.buffer_size, comments=payload.comments)
        return CompileResponse(assembly=compiler.emit(program))

    @app.post("/api/session", response_model=SessionPayload, status_code=status.HTTP_201_CREATED)
    def create_session(payload: SessionConfiguration) -> SessionPayload:
        program = _preprocess_or_422(payload.code)
        record = session_store.create_session(
            code=payload.code,
            program=program,
            input_template=_to_input_bytes(payload.input),
            tape_size=payload.tape_size,
            tape_window=payload.tape_window,
            max_steps=payload.max_steps,
            history_limit=payload.history_limit,
            skip_whitespace=payload.skip_whitespace,
        )
        return _build_payload(record)

    @app.get("/api/session/{session_id}", response_model=SessionPayload)
    def get_session(session_id: str) -> SessionPayload:
        return _build_payload(_get_record(session_id))

    @app.post("/api/session/{session_id}/reset", response_model=SessionPayload)
    def reset_session(session_id: str) -> SessionPayload:
        try:
            record = session_store.reset(session_id)
        except KeyError as exc:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
        return _build_payload(record)

    @app.post("/api/session/{session_id}/step", response_model=StepResponse)
    def step_session(session_id: str, payload: StepRequest) -> StepResponse:
        record = _get_record(session_id)
        try:
            states = record.session.step_forward(payload.count)
        except StepLimitExceeded as exc:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
        return _build_step_response(record, list(states))

    @app.post("/api/session/{session_id}/run", response_model=StepResponse)
    def run_session(session_id: str, payload: RunRequest) -> StepResponse:
        record = _get_record(session_id)
        session: VisualizerSession = record.session
        original_breakpoints: Optional[set[int]] = None
        if payload.ignore_breakpoints:
            original_breakpoints = set(session.breakpoints)
            session.clear_breakpoints()
            session.hit_breakpoint = None

        try:
            states = list(session.run_until_break(payload.limit))
        except StepLimitExceeded as exc:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
        finally:
            if original_breakpoints is not None:
                session.breakpoints = original_breakpoints
                session.hit_breakpoint = None

        return _build_step_response(record, states)

    @app.post("/api/session/{session_id}/breakpoints", response_model=SessionPayload)
    def add_breakpoint(session_id: str, payload: BreakpointRequest) -> SessionPayload:
        record = _get_record(session_id)
        record.session.add_breakpoint(payload.pc)
        return _build_payload(record)

    @app.delete("/api/session/{session_id}/breakpoints/{pc}", response_model=SessionPayload)
    def remove_breakpoint(session_id: str, pc: int) -> SessionPayload:
        record = _get_record(session_id)
        if not record.session.remove_breakpoint(pc):
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Breakpoint not found at pc={pc}",
            )
        return _build_payload(record)

    @app.delete("/api/session/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
    def delete_session(session_id: str) -> Response:
        if not session_store.remove(session_id):
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Unknown session id: {session_id}",
            )
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    return app


__all__ = ["create_app"]
