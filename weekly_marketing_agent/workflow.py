from __future__ import annotations

from datetime import date
from typing import Any, Callable, Sequence, TypedDict

from langgraph.graph import END, StateGraph

from weekly_marketing_agent.aggregator import collect_sources
from weekly_marketing_agent.config import AgentConfig
from weekly_marketing_agent.dashboard import write_dashboard
from weekly_marketing_agent.llm import build_narrative_llm
from weekly_marketing_agent.models import SOURCE_NAMES, CombinedSnapshot
from weekly_marketing_agent.narrative import generate_narrative
from weekly_marketing_agent.report_writer import build_artifact, write_artifact
from weekly_marketing_agent.sources import build_source_fetchers


class WorkflowState(TypedDict, total=False):
    run_date: date
    config: AgentConfig
    source_names: tuple[str, ...]

    # Optional injections; built from config when absent.
    fetchers: dict[str, Callable[[], dict[str, Any]]]
    llm: Any

    snapshot: CombinedSnapshot
    narrative: dict[str, Any]
    artifact: dict[str, Any]
    artifact_path: str
    dashboard_path: str


def collect_sources_node(state: WorkflowState) -> WorkflowState:
    config = state["config"]
    run_date = state["run_date"]
    source_names = tuple(state.get("source_names") or SOURCE_NAMES)
    fetchers = state.get("fetchers")
    if fetchers is None:
        fetchers = build_source_fetchers(config, run_date, config.enabled_sources)
    return {"snapshot": collect_sources(fetchers, source_names)}


def generate_narrative_node(state: WorkflowState) -> WorkflowState:
    config = state["config"]
    llm = state.get("llm")
    if llm is None:
        llm = build_narrative_llm(config)
    narrative = generate_narrative(
        state["snapshot"].as_dict(),
        llm=llm,
        business_context=config.business_context,
        run_date=state["run_date"],
    )
    return {"narrative": narrative}


def write_report_node(state: WorkflowState) -> WorkflowState:
    config = state["config"]
    artifact = build_artifact(state["narrative"], state["snapshot"], run_date=state["run_date"])
    path = write_artifact(artifact, config.output_path)
    print(f"Report saved: {path}")
    return {"artifact": artifact, "artifact_path": str(path)}


def render_dashboard_node(state: WorkflowState) -> WorkflowState:
    config = state["config"]
    path = write_dashboard(state["artifact"], config.dashboard_html_path)
    print(f"Dashboard rendered: {path}")
    return {"dashboard_path": str(path)}


def _route_after_write(state: WorkflowState) -> str:
    return "render_dashboard" if state["config"].dashboard_enabled else END


def build_workflow_app():
    workflow = StateGraph(WorkflowState)
    workflow.add_node("collect_sources", collect_sources_node)
    workflow.add_node("generate_narrative", generate_narrative_node)
    workflow.add_node("write_report", write_report_node)
    workflow.add_node("render_dashboard", render_dashboard_node)

    workflow.set_entry_point("collect_sources")
    workflow.add_edge("collect_sources", "generate_narrative")
    workflow.add_edge("generate_narrative", "write_report")
    workflow.add_conditional_edges(
        "write_report",
        _route_after_write,
        {"render_dashboard": "render_dashboard", END: END},
    )
    workflow.add_edge("render_dashboard", END)

    return workflow.compile()


def run_weekly_report(
    run_date: date,
    config: AgentConfig,
    *,
    fetchers: dict[str, Callable[[], dict[str, Any]]] | None = None,
    llm: Any = None,
    source_names: Sequence[str] = SOURCE_NAMES,
) -> WorkflowState:
    app = build_workflow_app()
    initial: WorkflowState = {
        "run_date": run_date,
        "config": config,
        "source_names": tuple(source_names),
    }
    if fetchers is not None:
        initial["fetchers"] = fetchers
    if llm is not None:
        initial["llm"] = llm
    return app.invoke(initial)
