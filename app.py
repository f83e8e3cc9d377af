# app.py
import streamlit as st
import pandas as pd
import numpy as np
import plotly.express as px
import plotly.graph_objects as go

from datetime import datetime, timezone

from intelboard import config
from intelboard.analysis import AnalysisClient
from intelboard.db import (
    add_comment,
    create_alert_rule,
    create_item,
    create_watchlist,
    delete_alert_rule,
    delete_comment,
    delete_watchlist,
    get_role,
    list_alert_rules,
    list_comments,
    list_notifications,
    list_watchlists,
    mark_all_notifications_read,
    mark_notification_read,
    open_live_collection,
    set_alert_rule_active,
    set_role,
    sync_live,
    unread_count,
    update_watchlist,
)
from intelboard.errors import AnalysisError, IntelboardError
from intelboard.export import export_filename, to_csv, to_json
from intelboard.filters import apply_filters
from intelboard.geo import map_points, resolve_region
from intelboard.schema import (
    REGIONS,
    ActorType,
    AlertConditions,
    AlertRule,
    AnalysisType,
    Category,
    Comment,
    ConfidenceLevel,
    FilterState,
    IntelItem,
    NotificationMethod,
    Role,
    SourceCredibility,
    ThreatLevel,
    TimeRange,
    Watchlist,
)
from intelboard.stats import priority_alerts, summarize
from intelboard.timeline import group_by_day


# ----------------------------
# THEME + UX (dark)
# ----------------------------
def apply_theme():
    st.markdown(
        """
        <style>
        :root{
          --bg:#0b0f14;
          --panel:#0f1620;
          --text:#e8edf2;
          --border:rgba(255,255,255,.10);
          --accent:#7fb3ff;
        }
        html, body, [class*="stApp"]{ background: var(--bg) !important; color: var(--text) !important; }
        [data-testid="stSidebar"]{ background: var(--panel) !important; border-right: 1px solid var(--border) !important; }
        [data-testid="stMetric"]{
          background: var(--panel) !important;
          border: 1px solid var(--border) !important;
          border-radius: 12px !important;
          padding: 14px 14px !important;
        }
        a{ color: var(--accent) !important; text-decoration:none; }
        </style>
        """,
        unsafe_allow_html=True,
    )


CATEGORY_COLOR = {
    "security": "#14b8a6",
    "diplomacy": "#3b82f6",
    "economy": "#10b981",
    "conflict": "#ef4444",
    "humanitarian": "#f59e0b",
    "technology": "#a855f7",
}

TIME_RANGE_LABELS = {
    TimeRange.LAST_HOUR: "Last Hour",
    TimeRange.LAST_24H: "Last 24h",
    TimeRange.LAST_7D: "Last 7 Days",
    TimeRange.ALL: "All time",
}


# ----------------------------
# Data: one live collection per session. In-process writes arrive through
# the change feed; writes from other processes (the importer) are replayed
# from the store's change log on every rerun.
# ----------------------------
def live_items() -> list:
    if "live" not in st.session_state:
        # the feed holds the collection weakly; session_state owns it
        st.session_state["live"] = open_live_collection()
    live = st.session_state["live"]
    sync_live(live)
    return live.items()


def sidebar_filters(all_items: list, user_id: str) -> FilterState:
    if "filters" not in st.session_state:
        st.session_state["filters"] = FilterState.reset()
    current: FilterState = st.session_state["filters"]

    st.header("Watchlists")
    saved = list_watchlists(user_id) if user_id else []
    names = ["(none)"] + [w.name + (" (shared)" if w.is_shared and w.user_id != user_id else "") for w in saved]
    pick = st.selectbox("Load watchlist", names, index=0)
    if pick != "(none)":
        current = saved[names.index(pick) - 1].filters

    st.divider()
    st.header("Filters")
    sources = sorted({it.source for it in all_items})
    query = st.text_input("Keyword search", value=current.search_query)
    categories = st.multiselect("Categories", [c.value for c in Category], default=current.categories)
    regions = st.multiselect("Regions", REGIONS, default=[r for r in current.regions if r in REGIONS])
    threat_levels = st.multiselect("Threat level", [t.value for t in ThreatLevel], default=current.threat_levels)
    confidence_levels = st.multiselect(
        "Confidence", [c.value for c in ConfidenceLevel], default=current.confidence_levels
    )
    actor_types = st.multiselect("Actor type", [a.value for a in ActorType], default=current.actor_types)
    picked_sources = st.multiselect("Sources", sources, default=[s for s in current.sources if s in sources])
    time_range = st.radio(
        "Time range",
        list(TimeRange),
        index=list(TimeRange).index(current.time_range),
        format_func=lambda t: TIME_RANGE_LABELS[t],
        horizontal=True,
    )

    filters = FilterState(
        search_query=query,
        categories=categories,
        regions=regions,
        sources=picked_sources,
        threat_levels=threat_levels,
        confidence_levels=confidence_levels,
        actor_types=actor_types,
        time_range=time_range,
    )
    st.session_state["filters"] = filters

    if st.button("Reset filters", disabled=not filters.has_active_filters()):
        st.session_state["filters"] = FilterState.reset()
        st.rerun()

    with st.expander("Save as watchlist"):
        wl_name = st.text_input("Name")
        wl_desc = st.text_input("Description")
        wl_shared = st.checkbox("Share with team")
        if st.button("Save", disabled=not (wl_name and user_id)):
            create_watchlist(
                Watchlist(user_id=user_id, name=wl_name, description=wl_desc or None,
                          filters=filters, is_shared=wl_shared)
            )
            st.success(f"Watchlist '{wl_name}' saved.")

    own = [w for w in saved if w.user_id == user_id]
    if own:
        with st.expander("Manage watchlists"):
            for w in own:
                watchlist_editor(w, user_id, filters)

    return filters


def watchlist_editor(w: Watchlist, user_id: str, filters: FilterState):
    st.markdown(f"**{w.name}**")
    name = st.text_input("Name", value=w.name, key=f"wl_name_{w.id}")
    desc = st.text_input("Description", value=w.description or "", key=f"wl_desc_{w.id}")
    shared = st.checkbox("Shared", value=w.is_shared, key=f"wl_shared_{w.id}")
    replace = st.checkbox("Replace filters with current", key=f"wl_filters_{w.id}")
    c1, c2 = st.columns(2)
    try:
        if c1.button("Update", key=f"wl_update_{w.id}", disabled=not name):
            # an emptied description clears it
            update_watchlist(
                w.id, user_id, name=name, description=desc or None, is_shared=shared,
                filters=filters if replace else None,
            )
            st.rerun()
        if c2.button("Delete", key=f"wl_delete_{w.id}"):
            delete_watchlist(w.id, user_id)
            st.rerun()
    except IntelboardError as exc:
        st.error(str(exc))
    st.divider()


def notifications_panel(user_id: str):
    unread = unread_count(user_id)
    label = f"Notifications ({unread} unread)" if unread else "Notifications"
    with st.expander(label):
        notes = list_notifications(user_id, limit=30)
        if not notes:
            st.caption("No notifications yet")
            return
        if unread and st.button("Mark all read"):
            mark_all_notifications_read(user_id)
            st.rerun()
        for n in notes:
            badge = "" if n.is_read else " **New**"
            st.markdown(f"[{n.type.value}] **{n.title}**{badge}  \n{n.message}")
            st.caption(n.created_at.strftime("%Y-%m-%d %H:%M UTC"))
            if not n.is_read and st.button("Mark read", key=f"note_{n.id}"):
                mark_notification_read(n.id, user_id)
                st.rerun()


# ----------------------------
# Map: markers by category + weighted heat layer
# ----------------------------
def intel_map(items: list):
    df_map = map_points(items)
    if df_map.empty:
        st.caption("No geo-coded items for these filters.")
        return

    fig = go.Figure()
    fig.add_trace(
        go.Densitymap(
            lat=df_map["lat"],
            lon=df_map["lon"],
            z=df_map["weight"],
            radius=28,
            colorscale="YlOrRd",
            showscale=False,
            hoverinfo="skip",
            name="heat",
        )
    )
    for cat in sorted(df_map["category"].unique()):
        sub = df_map[df_map["category"] == cat]
        fig.add_trace(
            go.Scattermap(
                lat=sub["lat"],
                lon=sub["lon"],
                mode="markers",
                marker=dict(size=11, color=CATEGORY_COLOR.get(cat, "#14b8a6")),
                hovertext=sub["title"],
                customdata=np.stack(
                    [sub["threat_level"].astype(str), sub["hours_old"].fillna(-1).round(1).astype(str)],
                    axis=1,
                ),
                hovertemplate="<b>%{hovertext}</b><br>Threat: %{customdata[0]}<br>Age (h): %{customdata[1]}<extra></extra>",
                name=cat,
            )
        )

    fig.update_layout(
        template="plotly_dark",
        height=700,
        margin=dict(l=0, r=0, t=0, b=0),
        map=dict(style="carto-darkmatter", zoom=1.1, center=dict(lat=18, lon=0)),
        legend=dict(yanchor="top", y=0.98, xanchor="right", x=0.99, bgcolor="rgba(0,0,0,0.35)"),
    )
    st.plotly_chart(fig, use_container_width=True)


def item_line(it: IntelItem) -> str:
    ts = it.published_at.strftime("%Y-%m-%d %H:%M UTC") if it.published_at else "undated"
    return (
        f"**[{it.title}]({it.url})**  \n"
        f"`{it.display_token()}` {it.source} | {it.region} / {it.country} | {ts}  \n"
        f"Threat: **{it.threat_level.value}** | {it.confidence_level.value} "
        f"({round(it.confidence_score * 100)}%) | {it.category.value}"
    )


def list_view(items: list, user_id: str):
    for it in items[:60]:
        st.markdown(item_line(it))
        if it.summary:
            st.caption(it.summary[:350])
        with st.expander("Comments"):
            comments_section(it, user_id)
        st.divider()


def comments_section(it: IntelItem, user_id: str):
    for c in list_comments(it.id):
        st.markdown(f"**{c.user_id}** ({c.created_at:%Y-%m-%d %H:%M}): {c.content}")
        if c.user_id == user_id and st.button("Delete", key=f"del_comment_{c.id}"):
            delete_comment(c.id, user_id)
            st.rerun()
    if not user_id:
        st.caption("Set an analyst ID to comment.")
        return
    text = st.text_area("Add a comment", key=f"comment_{it.id}")
    if st.button("Post", key=f"post_{it.id}", disabled=not text.strip()):
        try:
            add_comment(Comment(news_item_id=it.id, user_id=user_id, content=text.strip()))
        except IntelboardError as exc:
            st.error(str(exc))
            return
        st.rerun()


def alert_rules_view(user_id: str):
    if not user_id:
        st.caption("Set an analyst ID to manage alert rules.")
        return

    with st.form("new_alert_rule"):
        name = st.text_input("Rule name")
        categories = st.multiselect("Categories", [c.value for c in Category])
        regions = st.multiselect("Regions", REGIONS)
        threat_levels = st.multiselect("Threat levels", [t.value for t in ThreatLevel])
        keywords = st.text_input("Keywords (comma separated)")
        method = st.selectbox("Notify via", [m.value for m in NotificationMethod])
        submitted = st.form_submit_button("Create rule")
    if submitted:
        if not name:
            st.error("A rule needs a name.")
        else:
            create_alert_rule(
                AlertRule(
                    user_id=user_id,
                    name=name,
                    conditions=AlertConditions(
                        categories=categories,
                        regions=regions,
                        threat_levels=threat_levels,
                        keywords=[k.strip() for k in keywords.split(",") if k.strip()],
                    ),
                    notification_method=method,
                )
            )
            st.success(f"Alert rule '{name}' created.")

    for rule in list_alert_rules(user_id):
        c = rule.conditions
        parts = [", ".join(v) for v in (c.categories, c.regions, c.threat_levels, c.keywords) if v]
        left, mid, right = st.columns([4, 1, 1])
        left.markdown(f"**{rule.name}** ({rule.notification_method.value})  \n{' | '.join(parts) or 'any item'}")
        active = mid.toggle("Active", value=rule.is_active, key=f"rule_active_{rule.id}")
        if active != rule.is_active:
            set_alert_rule_active(rule.id, user_id, active)
        if right.button("Delete", key=f"rule_delete_{rule.id}"):
            delete_alert_rule(rule.id, user_id)
            st.rerun()


def timeline_view(items: list):
    dated = [it for it in items if it.published_at is not None]
    undated = len(items) - len(dated)
    if undated:
        st.caption(f"{undated} item(s) without a publication date are not shown on the timeline.")
    try:
        groups = group_by_day(dated)
    except IntelboardError as exc:
        st.error(str(exc))
        return
    for day, day_items in groups:
        st.subheader(day.strftime("%A, %d %B %Y"))
        for it in day_items:
            st.markdown(item_line(it))
        st.divider()


def executive_view(items: list):
    stats = summarize(items, top_regions=config.DASHBOARD_TOP_REGIONS)

    c1, c2, c3, c4 = st.columns(4)
    c1.metric("Total reports", stats.total, f"{stats.last_24h} in 24h")
    c2.metric("Critical", stats.critical_count, f"{stats.high_count} high")
    c3.metric("Verified", f"{stats.verified_rate}%")
    c4.metric("Avg confidence", f"{round(stats.avg_confidence * 100)}%")

    left, right = st.columns([2, 1])
    with left:
        st.subheader("Priority alerts")
        alerts = priority_alerts(stats)
        if not alerts:
            st.caption("No high-priority situations.")
        for it in alerts:
            st.markdown(item_line(it))
    with right:
        st.subheader("Top regions")
        if stats.regions:
            st.dataframe(pd.DataFrame(stats.regions, columns=["region", "count"]).set_index("region"))
        st.subheader("Categories")
        if stats.categories:
            st.dataframe(pd.DataFrame(stats.categories, columns=["category", "count"]).set_index("category"))

    st.info(
        f"{stats.critical_count + stats.high_count} high-priority situations require monitoring. "
        f"{stats.verified_rate}% of reports are verified. "
        f"Average confidence across all sources is {round(stats.avg_confidence * 100)}%."
    )


def analytics_view(items: list):
    stats = summarize(items, top_regions=None)
    if not stats.total:
        st.caption("No items for these filters.")
        return

    a, b = st.columns(2)
    with a:
        df_r = pd.DataFrame(stats.regions, columns=["region", "count"])
        fig = px.bar(df_r, x="region", y="count")
        fig.update_layout(template="plotly_dark", height=320, margin=dict(l=0, r=0, t=10, b=0))
        st.plotly_chart(fig, use_container_width=True)
    with b:
        df_t = pd.DataFrame(list(stats.threat_levels.items()), columns=["threat_level", "count"])
        df_t = df_t[df_t["count"] > 0]
        fig = px.pie(df_t, names="threat_level", values="count", hole=0.5)
        fig.update_layout(template="plotly_dark", height=320, margin=dict(l=0, r=0, t=10, b=0))
        st.plotly_chart(fig, use_container_width=True)

    st.write("**Source credibility (% of reports)**")
    st.dataframe(pd.Series(stats.source_credibility, name="percent"), use_container_width=True)


def analysis_panel(items: list):
    if not items:
        return
    st.subheader("AI analysis")
    by_label = {f"{it.display_token()} - {it.title[:80]}": it for it in items[:100]}
    label = st.selectbox("Item", list(by_label))
    kind = st.selectbox("Analysis", [a.value for a in AnalysisType])
    if st.button("Analyze"):
        try:
            with AnalysisClient() as client:
                st.write_stream(client.stream(by_label[label], kind))
        except AnalysisError as exc:
            st.error(f"Analysis failed: {exc}")


def create_item_form(user_id: str):
    with st.expander("New intel report"):
        with st.form("create_item"):
            title = st.text_input("Title")
            summary = st.text_area("Summary")
            url = st.text_input("Source URL")
            source = st.text_input("Source name")
            credibility = st.selectbox("Source credibility", [c.value for c in SourceCredibility])
            country = st.text_input("Country")
            region_text = st.text_input("Region")
            lat = st.number_input("Latitude", -90.0, 90.0, 0.0)
            lon = st.number_input("Longitude", -180.0, 180.0, 0.0)
            category = st.selectbox("Category", [c.value for c in Category])
            threat = st.selectbox("Threat level", [t.value for t in ThreatLevel])
            confidence = st.selectbox("Confidence", [c.value for c in ConfidenceLevel])
            actor = st.selectbox("Actor type", [a.value for a in ActorType])
            score = st.slider("Confidence score", 0.0, 1.0, 0.7)
            tags = st.text_input("Tags (comma separated)")
            submitted = st.form_submit_button("Create")

        if submitted:
            region = resolve_region(region_text)
            if region is None:
                st.error(f"Unknown region: {region_text!r}")
                return
            tag_list = list(dict.fromkeys(t.strip() for t in tags.split(",") if t.strip()))
            try:
                item = IntelItem(
                    title=title, summary=summary, url=url, source=source,
                    source_credibility=credibility, lat=lat, lon=lon, country=country,
                    region=region, tags=tag_list, confidence_score=score,
                    confidence_level=confidence, threat_level=threat, actor_type=actor,
                    category=category, published_at=datetime.now(timezone.utc),
                )
                create_item(item, user_id)
            except (ValueError, IntelboardError) as exc:
                st.error(f"Error creating intel: {exc}")
                return
            st.success("Intel created.")


# ----------------------------
# App
# ----------------------------
st.set_page_config(page_title="Intelboard", layout="wide")
apply_theme()

st.title("Intelboard")

all_items = live_items()

with st.sidebar:
    user_id = st.text_input("Analyst ID", value=st.session_state.get("user_id", ""))
    st.session_state["user_id"] = user_id
    role = get_role(user_id) if user_id else Role.ANALYST
    role = Role(st.radio("View", [r.value for r in Role], index=list(Role).index(role), horizontal=True))
    if user_id and role != get_role(user_id):
        set_role(user_id, role)
    if user_id:
        notifications_panel(user_id)
    st.divider()
    filters = sidebar_filters(all_items, user_id)

visible = apply_filters(all_items, filters)
st.caption(f"{len(visible)} / {len(all_items)} events")

if role == Role.EXECUTIVE:
    executive_view(visible)
else:
    tab_map, tab_list, tab_timeline, tab_analytics, tab_alerts = st.tabs(
        ["Map", "List", "Timeline", "Analytics", "Alert rules"]
    )
    with tab_map:
        intel_map(visible)
    with tab_list:
        list_view(visible, user_id)
    with tab_timeline:
        timeline_view(visible)
    with tab_analytics:
        analytics_view(visible)
    with tab_alerts:
        alert_rules_view(user_id)

    st.divider()
    analysis_panel(visible)
    if user_id:
        create_item_form(user_id)

# ----------------------------
# Export
# ----------------------------
d1, d2 = st.columns(2)
with d1:
    st.download_button(
        "Download CSV",
        data=to_csv(visible).encode("utf-8"),
        file_name=export_filename(ext="csv"),
        mime="text/csv",
    )
with d2:
    st.download_button(
        "Download JSON",
        data=to_json(visible).encode("utf-8"),
        file_name=export_filename(ext="json"),
        mime="application/json",
    )
