#!/usr/bin/env python3
from __future__ import annotations

import json
import logging
import os
from dataclasses import replace
from typing import Dict, Optional

import streamlit as st
from streamlit_js_eval import streamlit_js_eval

from tradeoff_study import text_blocks
from tradeoff_study.constants import DECISION_KEYS
from tradeoff_study.engine import EngineState, ExperimentEngine, TrialRun
from tradeoff_study.models import ClientInfo, PresentationKind, SessionState
from tradeoff_study.persistence import BackupError, FinalizationOutcome, finalize_session
from tradeoff_study.timeline import build_timeline
from tradeoff_study.utils.once_guard import run_once
from tradeoff_study.utils.persistence import load_study_config
from tradeoff_study.utils.ui_helpers import all_answered, key_button_label, key_listener_js, render_likert_index
from tradeoff_study.utils.validation import is_mobile

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

SHOW_DEBUG_RESULTS = os.getenv("STUDY_DEBUG", "").strip().lower() in {"1", "true", "yes", "on"}

# --------------------------------------------------------------------------------------
# Streamlit page config & global styling
# --------------------------------------------------------------------------------------

st.set_page_config(
    page_title="Decision Fatigue in Trade-offs",
    layout="centered",
    initial_sidebar_state="collapsed",
)

COMPACT_CSS = """
 <style>
   :root { --fs-base: 16px; --lh-base: 1.65; }
   #MainMenu, header, footer, [data-testid="stToolbar"] { display: none !important; }
   [data-testid="stSidebar"], section[data-testid="stSidebar"] { display: none !important; }
   html, body, [data-testid="stAppViewContainer"] {
     font-size: var(--fs-base);
     line-height: var(--lh-base);
     overflow-x: hidden !important;
   }
   .small { font-size: 0.95rem; }
   .muted { color: #8a8f98; }
   .tight li { margin-bottom: 2px; }
   .kbd {
     display: inline-block;
     padding: 0 6px;
     border: 1px solid #aaa;
     border-radius: 4px;
     font-family: monospace;
   }
   .grid2 {
     display: grid;
     grid-template-columns: 1fr 1fr;
     gap: 12px;
     margin: 12px 0;
   }
   .choice-card {
     padding: 12px 14px;
     border: 1px solid #d0d4da;
     border-radius: 10px;
   }
   .box {
     padding: 1.25rem 1.5rem;
     border-radius: 0.75rem;
     background-color: #20252b;
     color: #f5f5f5;
   }
   @media (max-width: 768px) {
     .grid2 { grid-template-columns: 1fr; }
   }
 </style>
"""

st.markdown(COMPACT_CSS, unsafe_allow_html=True)


def scroll_top_js() -> None:
    nonce = st.session_state.get("_scroll_nonce", 0)
    st.session_state["_scroll_nonce"] = nonce + 1
    script = """
        <script id="goTop-{nonce}">
        (function(){
          try {
            var pdoc = window.parent && window.parent.document;
            var sect = pdoc && pdoc.querySelector && pdoc.querySelector('section.main');
            if (sect && sect.scrollTo) sect.scrollTo({top:0,left:0,behavior:'instant'});
          } catch(e) {}
          try { window.scrollTo({top:0,left:0,behavior:'instant'}); } catch(e) {}
        })();
        </script>
    """.replace("{nonce}", str(nonce))
    st.markdown(script, unsafe_allow_html=True)


# --------------------------------------------------------------------------------------
# Session bootstrap
# --------------------------------------------------------------------------------------


def _client_info() -> ClientInfo:
    try:
        headers = st.context.headers
    except AttributeError:
        headers = {}
    user_agent = headers.get("User-Agent", "") or ""
    language = (headers.get("Accept-Language", "") or "").split(",")[0].strip()
    platform = (headers.get("Sec-Ch-Ua-Platform", "") or "").strip('"')
    return ClientInfo(
        user_agent=user_agent,
        language=language,
        platform=platform,
        mobile=is_mobile(user_agent),
    )


def capture_client_timezone() -> None:
    session: SessionState = st.session_state.session
    if session.client.timezone:
        return
    tz = streamlit_js_eval(
        js_expressions="Intl.DateTimeFormat().resolvedOptions().timeZone",
        key="client_timezone",
    )
    if isinstance(tz, str) and tz:
        session.client = replace(session.client, timezone=tz)


def _on_complete(engine: ExperimentEngine) -> Optional[FinalizationOutcome]:
    ss = st.session_state
    try:
        outcome = run_once(ss, "finalize", finalize_session, engine.session, ss.cfg)
    except BackupError as exc:
        ss.backup_error = str(exc)
        return None
    ss.outcome = outcome
    return outcome


def ensure_session_state() -> None:
    ss = st.session_state
    if "cfg" not in ss:
        ss.cfg = load_study_config()
    if "outcome" not in ss:
        ss.outcome = None
    if "backup_error" not in ss:
        ss.backup_error = None
    if "session" not in ss:
        ss.session = SessionState(_client_info())
        logger.info("New session %s (mobile=%s)", ss.session.participant_id, ss.session.client.mobile)
    if "engine" not in ss:
        ss.engine = ExperimentEngine(build_timeline(ss.cfg), ss.session, on_complete=_on_complete)
        ss.engine.start()


def advance() -> None:
    scroll_top_js()
    st.rerun()


# --------------------------------------------------------------------------------------
# Rendering helpers for each presentation kind
# --------------------------------------------------------------------------------------


def render_progress(engine: ExperimentEngine) -> None:
    done, total = engine.progress
    if total:
        st.progress(min(1.0, done / total))


def render_buttons(engine: ExperimentEngine, run: TrialRun) -> None:
    choices = list(run.spec.choices)
    cols = st.columns(len(choices))
    for idx, (col, label) in enumerate(zip(cols, choices)):
        with col:
            if st.button(label, key=f"t{run.index}_btn_{idx}", use_container_width=True):
                engine.respond(idx, run)
                advance()


@st.fragment(run_every=1.0)
def timeout_watch(run: TrialRun) -> None:
    engine: ExperimentEngine = st.session_state.engine
    if engine.poll(run) is not None:
        st.rerun(scope="app")
    remaining = engine.remaining_ms()
    if remaining is not None and engine.current is run:
        st.caption(f"剩餘 {remaining / 1000:.0f} 秒")


def render_timed_keys(engine: ExperimentEngine, run: TrialRun) -> None:
    keys = list(run.spec.choices)
    cols = st.columns(len(keys))
    for col, key in zip(cols, keys):
        label = key_button_label(key, DECISION_KEYS)
        with col:
            if st.button(label, key=f"t{run.index}_key_{key}", use_container_width=True):
                engine.respond(key, run)
                advance()
    timeout_watch(run)
    streamlit_js_eval(js_expressions=key_listener_js(DECISION_KEYS), key="response_key_listener")


def render_choice(engine: ExperimentEngine, run: TrialRun) -> None:
    st.markdown(run.spec.stimulus, unsafe_allow_html=True)
    if run.spec.timed:
        render_timed_keys(engine, run)
    else:
        render_buttons(engine, run)


def render_likert_survey(engine: ExperimentEngine, run: TrialRun) -> None:
    st.markdown(run.spec.stimulus, unsafe_allow_html=True)
    responses: Dict[str, Optional[int]] = {}
    for f in run.spec.fields:
        responses[f.name] = render_likert_index(
            f.name,
            f.prompt,
            labels=f.labels,
            key_prefix=f"t{run.index}",
        )
    required = [f.name for f in run.spec.fields if f.required]
    can_submit = all_answered(responses, required)
    if st.button("下一頁", key=f"t{run.index}_submit", disabled=not can_submit, use_container_width=True):
        engine.respond({k: v for k, v in responses.items() if v is not None}, run)
        advance()


def render_text_survey(engine: ExperimentEngine, run: TrialRun) -> None:
    st.markdown(run.spec.stimulus, unsafe_allow_html=True)
    with st.form(key=f"t{run.index}_form"):
        values = {
            f.name: st.text_input(f.prompt, key=f"t{run.index}_{f.name}")
            for f in run.spec.fields
        }
        submitted = st.form_submit_button("下一頁", use_container_width=True)
    if submitted:
        missing = [f.prompt for f in run.spec.fields if f.required and not values.get(f.name, "").strip()]
        if missing:
            st.warning("請填寫必填欄位。")
        else:
            engine.respond(values, run)
            advance()
    if run.spec.allow_early_abort:
        if st.button(text_blocks.GIVE_UP_LABEL, key=f"t{run.index}_giveup"):
            engine.give_up(run)
            advance()


RENDERERS = {
    PresentationKind.INSTRUCTION: render_choice,
    PresentationKind.CHOICE: render_choice,
    PresentationKind.LIKERT_SURVEY: render_likert_survey,
    PresentationKind.TEXT_SURVEY: render_text_survey,
}


def export_session_json(outcome: FinalizationOutcome) -> None:
    with st.expander("📦 Session data (JSON)", expanded=False):
        st.code(json.dumps(outcome.payload.to_dict(), ensure_ascii=False, indent=2), language="json")


def render_summary(engine: ExperimentEngine) -> None:
    ss = st.session_state
    if engine.state is EngineState.ABORTED:
        reason = engine.abort_reason or ""
        notice = text_blocks.DEVICE_BLOCKED_TEXT if reason.startswith("device_gate") else text_blocks.CONSENT_DECLINED_TEXT
        st.info(notice)

    st.header("完成！")
    if ss.backup_error:
        st.error(text_blocks.BACKUP_FAILED_MESSAGE)
    outcome: Optional[FinalizationOutcome] = ss.outcome
    if outcome is not None:
        if outcome.delivery.ok:
            st.success(outcome.message)
        else:
            st.warning(outcome.message)
        st.download_button(
            "下載備份檔",
            data=outcome.backup_bytes,
            file_name=outcome.backup_filename,
            mime="text/csv",
            use_container_width=True,
        )
    st.markdown(
        f"""
<div class="box">
  <p class="small muted">Participant ID: <b>{engine.session.participant_id}</b></p>
  <p class="small muted">你可以關閉此頁面。謝謝你的參與。</p>
</div>
""".strip(),
        unsafe_allow_html=True,
    )

    if SHOW_DEBUG_RESULTS and outcome is not None:
        st.subheader("Session log")
        export_session_json(outcome)


# --------------------------------------------------------------------------------------
# App entrypoint
# --------------------------------------------------------------------------------------

ensure_session_state()
capture_client_timezone()

engine: ExperimentEngine = st.session_state.engine
if engine.done or engine.current is None:
    render_summary(engine)
else:
    render_progress(engine)
    RENDERERS[engine.current.spec.kind](engine, engine.current)
