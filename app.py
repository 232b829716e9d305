"""
Streamlit dashboard for the traffic-light ETA simulator.
"""
import math

import streamlit as st
import matplotlib.pyplot as plt
import seaborn as sns
import plotly.express as px
import plotly.graph_objects as go
import logging

from analytics import compare_candidates, signal_state_summary
from application import TrafficEtaApplication
from config import SimulationConfig
from models import SessionStage

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Configure page
st.set_page_config(
    page_title="Traffic Light ETA",
    page_icon="🚦",
    layout="wide",
    initial_sidebar_state="expanded"
)

LIGHT_COLORS = {'red': 'red', 'green': 'green'}


@st.cache_resource
def initialize_system():
    """Build the application instance once per server process."""
    try:
        config = SimulationConfig.from_env()
        application = TrafficEtaApplication(config, background_routing=False)
        application.start()
        return application
    except Exception as e:
        st.error(f"Failed to initialize system: {e}")
        logger.error(f"System initialization error: {e}")
        return None


def main():
    """Main dashboard application."""
    st.title("🚦 Traffic Light ETA")
    st.markdown("Pick a start and a destination; ETAs include a delay for red lights along each route")

    application = initialize_system()

    if application is None:
        st.error("System initialization failed. Please check your configuration.")
        st.stop()

    show_sidebar(application)

    tab1, tab2, tab3 = st.tabs([
        "🗺️ Route Planner",
        "🚥 Signal Status",
        "🛣️ Route Comparison"
    ])

    with tab1:
        show_route_planner(application)

    with tab2:
        show_signal_status(application)

    with tab3:
        show_route_comparison(application)


def show_sidebar(application):
    """Simulation controls and the map-click form."""
    simulation = application.simulation
    session = application.session

    st.sidebar.header("Simulation Controls")

    status = simulation.get_simulation_status()

    if status['running']:
        st.sidebar.success("✅ Simulation Running")
        if st.sidebar.button("Stop Simulation"):
            simulation.stop_simulation()
            st.rerun()
    else:
        st.sidebar.info("⏸️ Simulation Stopped")
        if st.sidebar.button("Start Simulation"):
            simulation.start_simulation()
            st.rerun()

    st.sidebar.subheader("Current Status")
    st.sidebar.metric("Traffic Lights", status['lights'])
    st.sidebar.metric("Ticks", status['ticks'])
    st.sidebar.text(f"Timer: {status['timer_policy']} ({status['tick_interval']:g}s)")
    st.sidebar.text(f"Penalty: {application.estimator.penalty_policy}")

    if not application.lights_loaded:
        st.sidebar.warning("Traffic-light dataset unavailable; ETAs use travel time only.")

    st.sidebar.subheader("Map Click")
    if session.stage is SessionStage.AWAITING_START:
        st.sidebar.caption("Next click sets the start point")
    else:
        st.sidebar.caption("Next click sets the destination")

    center_lat, center_lng = application.map_view.center
    lat = st.sidebar.number_input("Latitude", value=float(center_lat), format="%.5f")
    lng = st.sidebar.number_input("Longitude", value=float(center_lng), format="%.5f")

    if st.sidebar.button("📍 Click Map Here"):
        with st.spinner("Fetching routes..."):
            session.handle_click((lat, lng))
        st.rerun()

    if st.sidebar.button("Reset"):
        session.reset()
        st.rerun()


def build_map_figure(application) -> go.Figure:
    """Plotly map of the signals and the current map scene."""
    lights = application.registry.snapshot()
    map_view = application.map_view
    fig = go.Figure()

    # Inactive routes first so the active one is drawn on top
    overlays = sorted(map_view.paths.items(), key=lambda item: item[1].opacity)
    for index, overlay in overlays:
        fig.add_trace(go.Scattermapbox(
            lat=[p[0] for p in overlay.path],
            lon=[p[1] for p in overlay.path],
            mode='lines',
            name=f"Route {index + 1}",
            line=dict(width=overlay.weight, color=overlay.color),
            opacity=overlay.opacity,
        ))

    # Larger ring under the signals counted against the active route
    if map_view.highlighted_signals:
        fig.add_trace(go.Scattermapbox(
            lat=[p[0] for p in map_view.highlighted_signals],
            lon=[p[1] for p in map_view.highlighted_signals],
            mode='markers',
            name="On route",
            marker=dict(size=20, color='orange', opacity=0.6),
            hoverinfo='skip',
        ))

    for color, group in lights.groupby('color'):
        fig.add_trace(go.Scattermapbox(
            lat=group['lat'],
            lon=group['lng'],
            mode='markers',
            name=f"{color.title()} lights",
            marker=dict(size=9, color=LIGHT_COLORS[color]),
            text=[f"{color} ({c}s)" for c in group['countdown']],
            hoverinfo='text',
        ))

    for key, marker in map_view.markers.items():
        fig.add_trace(go.Scattermapbox(
            lat=[marker.position[0]],
            lon=[marker.position[1]],
            mode='markers+text',
            name=marker.label,
            marker=dict(size=14, color='black' if key == 'start' else 'purple'),
            text=[marker.label],
            textposition='top right',
        ))

    if map_view.bounds:
        (min_lat, min_lng), (max_lat, max_lng) = map_view.bounds
        center = {'lat': (min_lat + max_lat) / 2, 'lon': (min_lng + max_lng) / 2}
        span = max(max_lat - min_lat, max_lng - min_lng, 0.005)
        # Rough zoom that fits the span in the viewport
        zoom = max(1, min(16, 8.5 - math.log2(span)))
    else:
        center = {'lat': map_view.center[0], 'lon': map_view.center[1]}
        zoom = map_view.zoom

    fig.update_layout(
        mapbox=dict(style='open-street-map', center=center, zoom=zoom),
        margin=dict(l=0, r=0, t=0, b=0),
        height=600,
        legend=dict(orientation='h', yanchor='bottom', y=0.01, xanchor='left', x=0.01),
    )
    return fig


def show_route_planner(application):
    """Map and ETA surfaces."""
    st.header("Route Planner")

    session = application.session
    display = application.display

    col1, col2, col3 = st.columns(3)

    with col1:
        st.metric("Current ETA", display.text('eta'))

    for column, surface in ((col2, 'route_1'), (col3, 'route_2')):
        with column:
            text = display.text(surface)
            if display.highlighted == surface:
                st.success(f"**{text}** (active)")
            else:
                st.info(text)

    if session.last_error is not None:
        st.warning(f"Routing failed: {session.last_error}")

    if len(session.candidates) > 1:
        choice = st.radio(
            "Active route",
            options=list(range(len(session.candidates))),
            format_func=lambda i: f"Route {i + 1}",
            index=session.active_index or 0,
            horizontal=True,
        )
        if choice != session.active_index:
            session.activate_route(choice)
            st.rerun()

    st.plotly_chart(build_map_figure(application), use_container_width=True)

    if st.button("🔄 Refresh"):
        st.rerun()


def show_signal_status(application):
    """Current light colors and countdown distribution."""
    st.header("Signal Status")

    snapshot = application.registry.snapshot()

    if snapshot.empty:
        st.warning("No traffic lights loaded.")
        return

    summary = signal_state_summary(application.registry)

    col1, col2 = st.columns(2)

    with col1:
        fig = px.pie(
            summary,
            values='count',
            names='color',
            color='color',
            color_discrete_map=LIGHT_COLORS,
            title="Lights by Color"
        )
        st.plotly_chart(fig, use_container_width=True)

    with col2:
        fig, ax = plt.subplots(figsize=(8, 6))
        sns.histplot(
            data=snapshot, x='countdown', hue='color', palette=LIGHT_COLORS,
            bins=15, multiple='stack', ax=ax
        )
        ax.set_xlabel('Seconds until change')
        ax.set_ylabel('Lights')
        ax.set_title('Countdown Distribution')
        ax.grid(True, alpha=0.3)
        st.pyplot(fig)

    st.subheader("Summary")
    st.dataframe(summary, use_container_width=True)


def show_route_comparison(application):
    """Side-by-side ETA breakdown of the route candidates."""
    st.header("Route Comparison")

    session = application.session
    state = session.state()

    if not state.candidates:
        st.info("No routes yet. Click a start point and a destination.")
        return

    comparison = compare_candidates(
        state.candidates,
        application.estimator,
        application.registry,
        session.threshold_meters,
        active_index=state.active_index,
    )

    fig = px.bar(
        comparison,
        x='route',
        y=['base_minutes', 'penalty_minutes'],
        title="ETA Breakdown by Route",
        labels={'value': 'Minutes', 'route': 'Route', 'variable': 'Component'}
    )
    st.plotly_chart(fig, use_container_width=True)

    display_data = comparison.round(2)
    display_data.columns = [
        'Route', 'Active', 'Distance (km)', 'Travel (min)', 'Red-light Delay (min)',
        'ETA (min)', 'Signals Nearby', 'Red Signals'
    ]
    st.dataframe(display_data, use_container_width=True)


if __name__ == "__main__":
    main()
