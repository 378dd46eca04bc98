from __future__ import annotations

import concurrent.futures
import json
import traceback
from typing import Any, Dict, List, Optional

import pandas as pd
import streamlit as st

from brightspots.config import APP_NAME, APP_VERSION
from brightspots.core import analytics
from brightspots.core.delta_sync import LOCAL_ONLY_WARNING
from brightspots.core.interest_manager import make_detail_record
from brightspots.core.record_store import LoadError
from brightspots.core.scoring import INTEREST_LABELS_EN, INTEREST_LEVELS, interest_weight
from brightspots.core.session import DashboardSession, SessionConfig, bootstrap
from brightspots.core.theme_manager import INVOLVEMENT_OPTIONS, make_assessment

SESSION_KEY = "brightspots_session"
SESSION_CONFIG_KEY = "brightspots_session_config"

# How long a save waits for its delta push before telling the user
PUSH_WAIT_SECONDS = 15

ROLLUP_TITLES = {
    "challenges": "Challenges",
    "techConcepts": "Technology concepts",
    "productsVendors": "Products & vendors",
}

TOOLTIP_LIMIT = 15


def _query_params() -> Dict[str, Any]:
    qp = st.query_params
    return {k: qp.get(k) for k in qp.keys()}


def _get_session() -> DashboardSession:
    config = SessionConfig.from_query_params(_query_params())
    cached: Optional[DashboardSession] = st.session_state.get(SESSION_KEY)
    if cached is not None and st.session_state.get(SESSION_CONFIG_KEY) == config:
        return cached

    if cached is not None:
        cached.close()
    dashboard = bootstrap(config)
    st.session_state[SESSION_KEY] = dashboard
    st.session_state[SESSION_CONFIG_KEY] = config
    return dashboard


def format_respondents(respondents: List[analytics.Respondent]) -> str:
    """
    One line per respondent with a role, one line per company for the rest.
    Capped at TOOLTIP_LIMIT lines.
    """
    if not respondents:
        return "No respondent data available"

    lines: List[str] = []
    companies: List[str] = []
    for resp in respondents:
        if resp.role.strip():
            lines.append(f"{resp.name.strip() or 'Anonymous'} ({resp.role})")
        elif resp.company.strip() and resp.company.strip() not in companies:
            companies.append(resp.company.strip())
    lines.extend(companies)

    if len(lines) > TOOLTIP_LIMIT:
        return "\n".join(lines[:TOOLTIP_LIMIT]) + f"\n...and {len(lines) - TOOLTIP_LIMIT} more"
    return "\n".join(lines)


def _report_push(dashboard: DashboardSession, record_id: str) -> None:
    """Wait briefly for the delta push triggered by a save and surface failures."""
    future = dashboard.sync.last_future
    if future is None or not dashboard.sync.is_scoped_to(record_id):
        return
    try:
        result = future.result(timeout=PUSH_WAIT_SECONDS)
    except concurrent.futures.TimeoutError:
        st.info("Changes saved locally; the remote copy is still being written.")
        return
    if not result.ok:
        st.warning(result.warning or LOCAL_ONLY_WARNING)


# ---------------------------------------------------------------------------
# Tabs
# ---------------------------------------------------------------------------

def _render_overview(dashboard: DashboardSession) -> None:
    records = dashboard.store.all()
    s = analytics.summary(records)

    col1, col2, col3 = st.columns(3)
    col1.metric("Responses", s.total_responses)
    col2.metric("Companies", s.companies)
    if s.start_date and s.end_date:
        col3.metric("Period", f"{s.start_date:%d-%m-%Y} to {s.end_date:%d-%m-%Y}")
    else:
        col3.metric("Period", "n/a")

    left, right = st.columns(2)
    with left:
        st.subheader("Customer theme tags")
        freqs = analytics.tag_frequencies(records, "customerThemesTags")
        st.dataframe(analytics.tag_frequency_frame(freqs), use_container_width=True, hide_index=True)
    with right:
        st.subheader("Emerging tech tags")
        freqs = analytics.tag_frequencies(records, "emergingTechTags")
        st.dataframe(analytics.tag_frequency_frame(freqs), use_container_width=True, hide_index=True)


def _render_tag_browser(dashboard: DashboardSession, domain: str, tag_field: str, key: str) -> None:
    records = dashboard.store.all()
    freqs = analytics.tag_frequencies(records, tag_field)
    options = ["(all)"] + [f.tag for f in freqs]
    selected = st.selectbox("Tag", options=options, index=0, key=f"{key}_tag")

    if selected == "(all)":
        if domain == analytics.CUSTOMER_THEME:
            entries = analytics.customer_theme_entries(records)
        else:
            entries = analytics.emerging_tech_entries(records)
    else:
        entries = analytics.entries_by_tag(records, selected, domain)
        if domain == analytics.CUSTOMER_THEME:
            st.caption("Companies: " + (", ".join(analytics.company_tag_index(records, selected)) or "none"))

    st.write(f"{len(entries)} entr{'y' if len(entries) == 1 else 'ies'}")
    for entry in entries:
        with st.container(border=True):
            st.markdown(f"**{entry.name}** · {entry.company}")
            st.write(entry.content or "")
            if entry.tags:
                st.caption(" · ".join(entry.tags))


def _render_rollups(dashboard: DashboardSession) -> None:
    records = dashboard.store.all()
    top_n = st.slider("Top N", min_value=5, max_value=50, value=10, step=5)

    for field, title in ROLLUP_TITLES.items():
        st.subheader(title)
        items = analytics.rollup(records, field)
        if not items:
            st.write("No answers yet.")
            continue

        frame = analytics.rollup_frame(items[:top_n], labels=INTEREST_LABELS_EN)
        st.bar_chart(frame.set_index("Item")[[INTEREST_LABELS_EN[l] for l in INTEREST_LEVELS]])
        st.dataframe(frame, use_container_width=True, hide_index=True)

        with st.expander(f"Who answered ({title.lower()})", expanded=False):
            for item in items[:top_n]:
                st.markdown(f"**{item.name}**")
                for level in reversed(INTEREST_LEVELS):
                    if item.respondents[level]:
                        st.text(f"{INTEREST_LABELS_EN[level]}:\n{format_respondents(item.respondents[level])}")


def _render_theme_assessments(dashboard: DashboardSession, company: str, editable: bool) -> None:
    st.subheader("Theme assessments")
    current = dashboard.themes.get(company)
    themes = dashboard.store.themes

    rows = []
    for theme in themes:
        a = current.get(theme.id) or {}
        rows.append(
            {
                "Theme": theme.name,
                "Involvement": INVOLVEMENT_OPTIONS.get(a.get("involvement") or "", "Not specified"),
                "Description": a.get("description", ""),
                "Updated": a.get("timestamp", ""),
            }
        )
    st.dataframe(pd.DataFrame(rows), use_container_width=True, hide_index=True)

    if not editable:
        return

    choices = ["(none)"] + list(INVOLVEMENT_OPTIONS.keys())
    with st.form(key=f"themes_{company}"):
        inputs = {}
        for theme in themes:
            a = current.get(theme.id) or {}
            existing = a.get("involvement")
            involvement = st.radio(
                theme.name,
                options=choices,
                index=choices.index(existing) if existing in choices else 0,
                format_func=lambda v: INVOLVEMENT_OPTIONS.get(v, "Not specified"),
                horizontal=True,
                key=f"inv_{company}_{theme.id}",
            )
            description = st.text_area(
                "Details",
                value=a.get("description", ""),
                key=f"desc_{company}_{theme.id}",
            )
            inputs[theme.id] = (involvement, description)

        if st.form_submit_button("Save assessments"):
            assessments = dict(current)
            for theme_id, (involvement, description) in inputs.items():
                inv = None if involvement == "(none)" else involvement
                if inv or description.strip():
                    assessments[theme_id] = make_assessment(inv, description)
                else:
                    assessments.pop(theme_id, None)

            if dashboard.themes.save(company, assessments):
                st.success("Theme assessments saved.")
                record = dashboard.store.company_record(company)
                if record is not None:
                    _report_push(dashboard, record.id)
            else:
                st.error(f"No record found for {company}.")


def _render_interest_details(dashboard: DashboardSession, company: str, profile: analytics.CompanyProfile, editable: bool) -> None:
    st.subheader("Interests")
    for category, title in ROLLUP_TITLES.items():
        items = profile.interests.get(category) or {}
        if not items:
            continue
        rows = []
        for item, level in sorted(items.items(), key=lambda kv: interest_weight(kv[1]), reverse=True):
            detail = dashboard.interests.get(company, category, item) or {}
            rows.append(
                {
                    "Item": item,
                    "Interest": INTEREST_LABELS_EN.get(level, level),
                    "Detail records": len(detail.get("records") or []),
                }
            )
        st.markdown(f"**{title}**")
        st.dataframe(pd.DataFrame(rows), use_container_width=True, hide_index=True)

    if not editable:
        return

    with st.form(key=f"interest_{company}", clear_on_submit=True):
        category = st.selectbox("Category", options=list(ROLLUP_TITLES), format_func=ROLLUP_TITLES.get)
        topic = st.text_input("Topic")
        where = st.text_input("Customer (where)")
        when = st.text_input("When")
        what = st.text_area("Interest (what)")
        from_ = st.text_input("Contact (from, optional)")

        if st.form_submit_button("Add record"):
            try:
                detail_record = make_detail_record(where, when, what, from_)
            except ValueError as exc:
                st.error(str(exc))
                return
            if not topic.strip():
                st.error("Please choose a topic.")
                return
            if dashboard.interests.add_records(company, category, topic.strip(), [detail_record]):
                st.success("Interest details saved.")
                record = dashboard.store.primary_record(company)
                if record is not None:
                    _report_push(dashboard, record.id)
            else:
                st.error(f"No company record (without a role) found for {company}.")


def _render_companies(dashboard: DashboardSession) -> None:
    records = dashboard.store.all()
    groups = analytics.companies(records)
    st.dataframe(
        pd.DataFrame([{"Company": g.name, "Respondents": g.count} for g in groups]),
        use_container_width=True,
        hide_index=True,
    )

    profiles = analytics.company_profiles(records)
    names = sorted(profiles)
    if not names:
        return

    default = dashboard.scoped_company()
    index = names.index(default) + 1 if default in names else 0
    company = st.selectbox("Company", options=["(choose)"] + names, index=index)
    if company == "(choose)":
        return

    profile = profiles[company]
    editable = dashboard.can_edit(company)
    st.write("Contributors: " + (", ".join(profile.contributors) or "none"))
    st.caption(f"{len(dashboard.store.records_for_company(company))} response(s) from this company")

    st.subheader("Customer themes")
    themes_text = "\n\n".join(profile.customer_themes)
    if editable:
        with st.form(key=f"custthemes_{company}"):
            text = st.text_area("Customer themes", value=themes_text, height=150)
            if st.form_submit_button("Save customer themes"):
                parts = [t.strip() for t in text.split("\n\n") if t.strip()]
                if dashboard.themes.save_customer_themes(company, parts):
                    st.success("Customer themes saved.")
                    record = dashboard.store.primary_record(company)
                    if record is not None:
                        _report_push(dashboard, record.id)
                else:
                    st.error(f"No company record (without a role) found for {company}.")
    else:
        st.write(themes_text or "No customer themes yet.")

    _render_theme_assessments(dashboard, company, editable)
    _render_interest_details(dashboard, company, profile, editable)


def _render_people(dashboard: DashboardSession) -> None:
    people = analytics.people(dashboard.store.all())
    if not people:
        st.write("No respondents with a role.")
        return
    st.dataframe(
        pd.DataFrame([{"Name": p.name, "Role": p.role, "Company": p.company} for p in people]),
        use_container_width=True,
        hide_index=True,
    )


def _render_export(dashboard: DashboardSession) -> None:
    if not dashboard.config.admin_mode:
        return
    with st.sidebar:
        st.download_button(
            "Download full dataset (JSON)",
            data=json.dumps(dashboard.export_payload(), indent=2, ensure_ascii=False),
            file_name="brightspots-export.json",
            mime="application/json",
        )


def run_app() -> None:
    st.set_page_config(page_title=APP_NAME, page_icon="📊", layout="wide")
    st.title(APP_NAME)
    st.caption(f"Version {APP_VERSION}")

    try:
        with st.spinner("Loading survey data..."):
            dashboard = _get_session()
    except LoadError as exc:
        st.error(f"Could not load the survey data: {exc}")
        st.text_area("Traceback", value=traceback.format_exc(), height=220)
        if st.button("Retry"):
            st.session_state.pop(SESSION_KEY, None)
            st.rerun()
        return

    if dashboard.config.delta_scoped:
        st.sidebar.write(f"Record: {dashboard.config.record_id}")
        st.sidebar.caption(f"Delta file: {dashboard.sync.delta_url()}")
        st.sidebar.write("Delta applied" if dashboard.delta_applied else "No delta applied")
    _render_export(dashboard)

    tabs = st.tabs(["Overview", "Customer themes", "Emerging tech", "Technology trends", "Companies", "People"])
    with tabs[0]:
        _render_overview(dashboard)
    with tabs[1]:
        _render_tag_browser(dashboard, analytics.CUSTOMER_THEME, "customerThemesTags", key="ct")
    with tabs[2]:
        _render_tag_browser(dashboard, analytics.TECH, "emergingTechTags", key="et")
    with tabs[3]:
        _render_rollups(dashboard)
    with tabs[4]:
        _render_companies(dashboard)
    with tabs[5]:
        _render_people(dashboard)
