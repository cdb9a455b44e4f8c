# src/adcs/engine/chain.py
"""Chain Runner: executes a ChainedAdaptor's links as a state machine.

    PENDING -> RUNNING(0) -> RUNNING(1) -> ... -> COMPLETED
                    \\             \\
                     +-------------+-----------> FAILED(i)

Link 0 receives the chain's upstream graph entries; link i > 0 receives
link i-1's output, converted to the first format link i accepts when the
produced format is not accepted as-is. After the last link the value is
converted to the chain's own output format. Any failure stops the chain at
that link; no partial output leaves a failed chain.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

import structlog

from adcs.contracts.enums import ChainState, GraphErrorKind
from adcs.contracts.errors import AdcsError, GraphValidationError
from adcs.contracts.results import NodeFailure, NodeOutput
from adcs.contracts.types import ModelName, NodeID
from adcs.core.nodes import Adaptor, ChainedAdaptor
from adcs.engine.adaptor import AdaptorRunner
from adcs.engine.formats import ConversionOptions, convert, link_input_format
from adcs.plugins.protocols import ReasoningModel

slog = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class LinkRecord:
    """What happened at one link."""

    index: int
    link_id: NodeID
    output: NodeOutput | None = None
    error: AdcsError | None = None


@dataclass(frozen=True, slots=True)
class ChainOutcome:
    """Terminal state of one chain run.

    Attributes:
        state: COMPLETED or FAILED
        value: Chain output in the chain's format (COMPLETED only)
        failed_index: Zero-based index of the failing link (FAILED only)
        error: Error raised by the failing link (FAILED only)
        history: One record per link that started, in order
    """

    state: ChainState
    value: NodeOutput | None
    failed_index: int | None
    error: AdcsError | None
    history: tuple[LinkRecord, ...]


class ChainRunner:
    """Runs chains link by link. Stateless between runs."""

    def __init__(self, adaptor_runner: AdaptorRunner | None = None) -> None:
        self._adaptor_runner = adaptor_runner if adaptor_runner is not None else AdaptorRunner()

    def run(
        self,
        chain: ChainedAdaptor,
        upstream: Mapping[NodeID, NodeOutput | NodeFailure],
        models: Mapping[ModelName, ReasoningModel],
    ) -> ChainOutcome:
        """Execute every link in order and report the terminal state."""
        state = ChainState.PENDING
        history: list[LinkRecord] = []
        link_upstream: Mapping[NodeID, NodeOutput | NodeFailure] = upstream
        previous: NodeOutput | None = None

        for index, link in enumerate(chain.links):
            state = ChainState.RUNNING
            slog.debug("chain_link_started", chain_id=chain.node_id, link_index=index, link_id=link.node_id, state=str(state))
            try:
                if previous is not None:
                    link_upstream = {previous.node_id: self._coerce(chain, previous, link)}
                output = self._adaptor_runner.run(link, link_upstream, model=_model_for(link, models))
            except AdcsError as e:
                history.append(LinkRecord(index=index, link_id=link.node_id, error=e))
                return self._failed(chain, index, e, history)
            history.append(LinkRecord(index=index, link_id=link.node_id, output=output))
            previous = output

        assert previous is not None  # chains have at least two links
        last_index = len(chain.links) - 1
        last = chain.links[last_index]
        try:
            value = convert(
                previous.value,
                previous.output_format,
                chain.output_format,
                ConversionOptions.from_config(last.config),
                node_id=chain.node_id,
            )
        except AdcsError as e:
            return self._failed(chain, last_index, e, history)

        state = ChainState.COMPLETED
        slog.debug("chain_completed", chain_id=chain.node_id, links=len(chain.links), state=str(state))
        output = NodeOutput(
            node_id=chain.node_id,
            value=value,
            confidence=previous.confidence,
            output_format=chain.output_format,
            rationale=previous.rationale,
            metadata={"links": len(chain.links), "last_link": last.node_id},
        )
        return ChainOutcome(state=state, value=output, failed_index=None, error=None, history=tuple(history))

    @staticmethod
    def _coerce(chain: ChainedAdaptor, previous: NodeOutput, link: Adaptor) -> NodeOutput:
        target = link_input_format(previous.output_format, link.accepts)
        if target is None:
            raise GraphValidationError(
                f"Chain '{chain.node_id}': link '{link.node_id}' cannot accept '{previous.output_format}'",
                kind=GraphErrorKind.TYPE_MISMATCH,
                node_id=chain.node_id,
            )
        if target == previous.output_format:
            return previous
        value = convert(previous.value, previous.output_format, target, ConversionOptions.from_config(link.config), node_id=link.node_id)
        return NodeOutput(
            node_id=previous.node_id,
            value=value,
            confidence=previous.confidence,
            output_format=target,
            rationale=previous.rationale,
            metadata=previous.metadata,
        )

    @staticmethod
    def _failed(chain: ChainedAdaptor, index: int, error: AdcsError, history: list[LinkRecord]) -> ChainOutcome:
        slog.warning(
            "chain_failed",
            chain_id=chain.node_id,
            link_index=index,
            link_id=chain.links[index].node_id,
            error_kind=str(error.kind),
            error=str(error),
        )
        return ChainOutcome(
            state=ChainState.FAILED,
            value=None,
            failed_index=index,
            error=error,
            history=tuple(history),
        )


def _model_for(link: Adaptor, models: Mapping[ModelName, ReasoningModel]) -> ReasoningModel | None:
    if link.core_model is None:
        return None
    return models[link.core_model]
