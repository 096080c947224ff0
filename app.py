"""
Cellarbook - a personal wine cellar.
A Streamlit app for browsing, logging and asking about a wine collection.
"""

import base64
import re
import sys
from datetime import date
from pathlib import Path

import streamlit as st
import plotly.graph_objects as go
from dotenv import load_dotenv

# Add src to path
sys.path.insert(0, str(Path(__file__).parent / "src"))

from cellarbook import wines_repo
from cellarbook.catalog_query import (
    CatalogQuery,
    collection_stats,
    drink_window_status,
    extract_filter_facets,
    remaining_bottles,
    run_query,
)
from cellarbook.constants import (
    DrinkWindowStatus,
    FilePaths,
    LABEL_ACIDITY_LEVELS,
    LABEL_BODY_LEVELS,
    LABEL_TANNIN_LEVELS,
    LABEL_WINE_TYPES,
    SortOption,
)
from cellarbook.error_handling import (
    ConfigurationError,
    DataValidationError,
    ErrorContext,
    StorageError,
)
from cellarbook.images import parse_data_url, upload_wine_images
from cellarbook.normalizer import load_catalog_file, wines_to_frame
from cellarbook.overlay import OverlayStore, merge_collection
from cellarbook.schema import Filters, Wine
from cellarbook.similarity import SimilarityEngine
from cellarbook.sommelier import Sommelier
from cellarbook.supabase_session import get_optional_supabase_client

# Load environment variables
load_dotenv()

# Page configuration
st.set_page_config(
    page_title="Cellarbook",
    page_icon="🍷",
    layout="wide",
    initial_sidebar_state="expanded"
)

st.markdown("""
<style>
    :root {
        --wine-red: #800020;
        --text-secondary: #A0A0A8;
    }

    #MainMenu {visibility: hidden;}
    footer {visibility: hidden;}

    .main-title {
        font-size: 42px;
        font-weight: 800;
        color: var(--wine-red);
        margin-bottom: 0;
    }

    .subtitle {
        color: var(--text-secondary);
        margin-top: 0;
    }

    .status-badge {
        display: inline-block;
        padding: 2px 10px;
        border-radius: 12px;
        font-size: 12px;
        font-weight: 600;
        color: white;
    }

    .match-reason {
        font-size: 12px;
        color: var(--text-secondary);
    }
</style>
""", unsafe_allow_html=True)

STATUS_COLORS = {
    DrinkWindowStatus.AT_PEAK.value: "#2E7D32",
    DrinkWindowStatus.READY.value: "#1565C0",
    DrinkWindowStatus.TOO_YOUNG.value: "#F9A825",
    DrinkWindowStatus.PAST_PRIME.value: "#8B0000",
    DrinkWindowStatus.UNKNOWN.value: "#616161",
}

# Sidebar filter widgets: (Filters field, FilterOptions field, label)
FILTER_WIDGETS = [
    ("wine_type", "wine_types", "Type"),
    ("country", "countries", "Country"),
    ("region", "regions", "Region"),
    ("grape_variety", "grape_varieties", "Grape"),
    ("vintage", "vintages", "Vintage"),
    ("drink_window_status", "drink_window_statuses", "Drink window"),
    ("body", "bodies", "Body"),
    ("tannin_level", "tannin_levels", "Tannin"),
    ("acidity_level", "acidity_levels", "Acidity"),
]

ALL_OPTION = "All"

_REFERENCE_LINK = re.compile(r'\[\[([^\]|]+)\|[^\]]+\]\]')


# =======================
# BACKEND
# =======================

@st.cache_resource
def get_supabase():
    """Supabase client when configured, else None (local files)."""
    try:
        return get_optional_supabase_client()
    except ConfigurationError as e:
        st.warning(f"⚠️ Supabase misconfigured, using local files: {e}")
        return None


@st.cache_resource
def get_overlay_store():
    return OverlayStore(FilePaths.OVERLAY_JSON)


@st.cache_resource
def load_sommelier():
    """Load the AI sommelier; None when no OpenAI key is set."""
    try:
        return Sommelier()
    except ConfigurationError as e:
        st.info(f"💡 {e}")
        return None


@st.cache_data
def load_local_catalog(path: str):
    try:
        return load_catalog_file(path)
    except StorageError as e:
        st.warning(f"⚠️ {e}")
        return []


@st.cache_data(ttl=60)
def load_remote_collection(_sb):
    """Wines and consumed counts from Supabase (cached for a minute)."""
    return wines_repo.list_wines(_sb), wines_repo.consumption_counts(_sb)


def load_collection(sb, store):
    """Active wines plus consumed counts from whichever backend is in use."""
    if sb is not None:
        try:
            return load_remote_collection(sb)
        except StorageError as e:
            st.error(f"Could not load the collection from Supabase: {e}")
            return [], {}

    catalog = load_local_catalog(FilePaths.CATALOG_JSON)
    return merge_collection(catalog, store.overlay), store.consumed_counts()


def refresh_collection():
    load_remote_collection.clear()


# =======================
# DISPLAY HELPERS
# =======================

def status_badge(status: str) -> str:
    color = STATUS_COLORS.get(status, STATUS_COLORS[DrinkWindowStatus.UNKNOWN.value])
    return f'<span class="status-badge" style="background:{color};">{status}</span>'


def show_label_image(image: str, caption: str):
    """Render a stored URL or a not-yet-uploaded data URL."""
    if not image:
        return
    if image.startswith("data:"):
        try:
            _, raw = parse_data_url(image)
        except DataValidationError:
            st.caption(f"{caption}: unreadable image")
            return
        st.image(raw, caption=caption, use_container_width=True)
    else:
        st.image(image, caption=caption, use_container_width=True)


def file_to_data_url(uploaded_file) -> str:
    encoded = base64.b64encode(uploaded_file.getvalue()).decode()
    return f"data:{uploaded_file.type};base64,{encoded}"


def create_status_chart(status_counts: dict):
    """Bar chart of wines per drink-window status."""
    order = DrinkWindowStatus.selectable() + [DrinkWindowStatus.UNKNOWN.value]
    labels = [status for status in order if status_counts.get(status)]
    fig = go.Figure(go.Bar(
        x=labels,
        y=[status_counts[status] for status in labels],
        marker_color=[STATUS_COLORS[status] for status in labels],
    ))
    fig.update_layout(
        height=260,
        margin=dict(l=10, r=10, t=10, b=10),
        yaxis_title="Wines",
        showlegend=False,
    )
    return fig


# =======================
# SIDEBAR
# =======================

def render_sidebar(wines) -> CatalogQuery:
    """Search, filters and sort, kept in the URL so views can be shared."""
    query = CatalogQuery.from_params(st.query_params.to_dict())
    facets = extract_filter_facets(wines)

    with st.sidebar:
        st.header("🔎 Find a Wine")

        search = st.text_input("Search", value=query.search, placeholder="Producer, grape, region...")

        sort_options = list(SortOption)
        sort = st.selectbox(
            "Sort by",
            sort_options,
            index=sort_options.index(query.sort),
            format_func=lambda option: option.label,
        )

        show_finished = st.checkbox("Show finished wines", value=query.show_finished)

        st.markdown("---")
        criteria = {}
        current = query.filters.model_dump()
        for field_name, facet_name, label in FILTER_WIDGETS:
            options = [ALL_OPTION] + getattr(facets, facet_name)
            selected = current.get(field_name) or ALL_OPTION
            index = options.index(selected) if selected in options else 0
            choice = st.selectbox(label, options, index=index, key=f"filter_{field_name}")
            if choice != ALL_OPTION:
                criteria[field_name] = choice

    updated = CatalogQuery(
        search=search.strip(),
        filters=Filters(**criteria),
        sort=sort,
        show_finished=show_finished,
    )
    if updated.to_params() != query.to_params():
        st.query_params.from_dict(updated.to_params())
    return updated


# =======================
# WINE DETAIL
# =======================

def render_consumption(wine: Wine, sb, store, consumed: int):
    st.markdown("#### 🥂 Bottles")
    remaining = remaining_bottles(wine, consumed)
    c1, c2 = st.columns(2)
    c1.metric("Remaining", remaining)
    c2.metric("Opened", consumed)

    history = []
    with ErrorContext("loading consumption history") as ctx:
        if sb is not None:
            history = wines_repo.list_consumption(sb, wine.id)
        else:
            history = list(reversed(store.consumption_history(wine.id)))
    if ctx.error:
        st.error(ctx.message)

    for event in history:
        col_a, col_b = st.columns([4, 1])
        col_a.markdown(f"**{event.date}** {event.notes}")
        if col_b.button("Undo", key=f"undo_{event.id}"):
            with ErrorContext("removing consumption") as ctx:
                if sb is not None:
                    wines_repo.remove_consumption(sb, event.id)
                    refresh_collection()
                else:
                    store.remove_consumption(wine.id, event.id)
            if ctx.error:
                st.error(ctx.message)
            else:
                st.rerun()

    with st.form(f"consume_{wine.id}", clear_on_submit=True):
        when = st.date_input("Date", value=date.today())
        notes = st.text_input("Occasion / notes")
        if st.form_submit_button("🍷 Log a bottle"):
            if remaining <= 0:
                st.warning("All bottles are already logged; recording anyway.")
            with ErrorContext("logging consumption") as ctx:
                if sb is not None:
                    wines_repo.add_consumption(sb, wine.id, when.isoformat(), notes)
                    refresh_collection()
                else:
                    store.add_consumption(wine.id, when.isoformat(), notes, quantity=wine.quantity)
            if ctx.error:
                st.error(ctx.message)
            else:
                st.rerun()


def render_personal_data(wine: Wine, sb, store):
    st.markdown("#### 📝 My Notes")
    note, purchase_date = "", wine.purchase_date
    with ErrorContext("loading notes") as ctx:
        if sb is not None:
            note = wines_repo.get_user_note(sb, wine.id)
            purchase_date = wines_repo.get_purchase_date(sb, wine.id) or wine.purchase_date
        else:
            note = store.user_note(wine.id)
            purchase_date = store.effective_purchase_date(wine)
    if ctx.error:
        st.error(ctx.message)
        return

    with st.form(f"notes_{wine.id}"):
        new_note = st.text_area("Note", value=note)
        new_purchase_date = st.text_input("Purchase date", value=purchase_date)
        if st.form_submit_button("💾 Save"):
            with ErrorContext("saving notes") as ctx:
                if sb is not None:
                    wines_repo.save_user_note(sb, wine.id, new_note)
                    wines_repo.save_purchase_date(sb, wine.id, new_purchase_date)
                else:
                    store.save_user_note(wine.id, new_note)
                    store.save_purchase_date(wine.id, new_purchase_date)
            if ctx.error:
                st.error(ctx.message)
            else:
                st.success("✓ Saved")


def render_similar(wine: Wine, engine: SimilarityEngine):
    st.markdown("#### 🔗 Similar in Your Cellar")
    matches = engine.similar_to(wine.id)
    if not matches:
        st.caption("No similar wines found.")
        return
    for match in matches:
        st.markdown(f"**{match.wine.display_name}** · score {match.score}")
        st.markdown(
            f'<p class="match-reason">{" · ".join(match.match_reasons)}</p>',
            unsafe_allow_html=True
        )


def render_wine_detail(wine: Wine, sb, store, consumed_counts, engine: SimilarityEngine):
    status = drink_window_status(wine).value
    st.markdown(f"### {wine.display_name}")
    st.markdown(status_badge(status), unsafe_allow_html=True)

    img_col, info_col = st.columns([1, 2])
    with img_col:
        show_label_image(wine.front_image, "Front")
        show_label_image(wine.back_image, "Back")

    with info_col:
        details = [
            ("Type", wine.wine_type),
            ("Origin", ", ".join(part for part in (wine.region, wine.country) if part)),
            ("Appellation", wine.appellation),
            ("Grapes", wine.grape_varieties),
            ("Body / Tannin / Acidity", " / ".join(
                part for part in (wine.body, wine.tannin_level, wine.acidity_level) if part
            )),
            ("Oak", wine.oak_treatment),
            ("Drink window", f"{wine.drink_window_start}-{wine.drink_window_end}".strip("-")),
            ("Peak", wine.peak_drinking),
            ("Storage", wine.storage_location),
            ("Rating", wine.rating),
        ]
        for label, value in details:
            if value:
                st.markdown(f"**{label}:** {value}")
        if wine.tasting_notes:
            with st.expander("👃 Tasting Notes"):
                st.markdown(f"_{wine.tasting_notes}_")
                if wine.aroma_notes:
                    st.markdown(f"_{wine.aroma_notes}_")
        if wine.food_pairings:
            st.markdown(f"**Pairs with:** {wine.food_pairings}")

    left, right = st.columns(2)
    with left:
        render_consumption(wine, sb, store, consumed_counts.get(wine.id, 0))
    with right:
        render_personal_data(wine, sb, store)

    render_similar(wine, engine)

    st.markdown("---")
    if st.button("🗑️ Remove from collection", key=f"delete_{wine.id}"):
        with ErrorContext("deleting wine") as ctx:
            if sb is not None:
                wines_repo.delete_wine(sb, wine.id)
                refresh_collection()
            else:
                store.delete_wine(wine.id)
        if ctx.error:
            st.error(ctx.message)
        else:
            st.success(f"Removed {wine.display_name}")
            st.rerun()


# =======================
# TABS
# =======================

def render_collection_tab(wines, consumed_counts, query: CatalogQuery, sb, store):
    stats = collection_stats(wines, consumed_counts)
    m1, m2, m3, m4 = st.columns(4)
    m1.metric("Wines", stats.active_wines)
    m2.metric("Bottles", stats.total_bottles)
    m3.metric("At Peak", stats.status_counts.get(DrinkWindowStatus.AT_PEAK.value, 0))
    m4.metric("Ready", stats.status_counts.get(DrinkWindowStatus.READY.value, 0))

    if stats.status_counts:
        st.plotly_chart(create_status_chart(stats.status_counts), use_container_width=True)

    results = run_query(wines, query, consumed_counts)
    st.caption(f"Showing {len(results)} of {len(wines)} wines · sorted by {query.sort.label}")

    if not results:
        st.info("No wines match. Try clearing a filter.")
        return

    frame = wines_to_frame(results, consumed_counts)
    st.dataframe(frame.drop(columns=['id']), use_container_width=True, hide_index=True)

    by_id = {wine.id: wine for wine in results}
    selected_id = st.selectbox(
        "Open wine",
        list(by_id),
        format_func=lambda wine_id: by_id[wine_id].display_name,
    )
    if selected_id:
        st.markdown("---")
        render_wine_detail(by_id[selected_id], sb, store, consumed_counts, SimilarityEngine(wines))


def _select(label: str, options, value: str, key: str) -> str:
    choices = [""] + list(options)
    index = choices.index(value) if value in choices else 0
    return st.selectbox(label, choices, index=index, key=key)


def render_add_tab(sb, store, sommelier):
    st.markdown("### ➕ Add a Wine")

    front = st.file_uploader("Front label", type=['jpg', 'jpeg', 'png', 'webp', 'gif'], key="front_upload")
    back = st.file_uploader("Back label", type=['jpg', 'jpeg', 'png', 'webp', 'gif'], key="back_upload")

    if front and sommelier is not None and st.button("🔍 Read label"):
        with st.spinner("Reading the label..."):
            with ErrorContext("label analysis") as ctx:
                st.session_state['label_prefill'] = sommelier.analyze_label(file_to_data_url(front)).to_wine_fields()
        if ctx.error:
            st.error(ctx.message)
        else:
            st.success("✓ Label read; check the fields below")

    prefill = st.session_state.get('label_prefill', {})

    with st.form("add_wine", clear_on_submit=True):
        c1, c2, c3 = st.columns(3)
        producer = c1.text_input("Producer", value=prefill.get('producer', ''))
        name = c2.text_input("Wine", value=prefill.get('name', ''))
        vintage = c3.text_input("Vintage", value=prefill.get('vintage', ''))

        c1, c2, c3 = st.columns(3)
        with c1:
            wine_type = _select("Type", LABEL_WINE_TYPES, prefill.get('wine_type', ''), "add_type")
        country = c2.text_input("Country", value=prefill.get('country', ''))
        region = c3.text_input("Region", value=prefill.get('region', ''))

        grapes = st.text_input("Grape varieties", value=prefill.get('grape_varieties', ''))

        c1, c2, c3 = st.columns(3)
        with c1:
            body = _select("Body", LABEL_BODY_LEVELS, prefill.get('body', ''), "add_body")
        with c2:
            tannin = _select("Tannin", LABEL_TANNIN_LEVELS, prefill.get('tannin_level', ''), "add_tannin")
        with c3:
            acidity = _select("Acidity", LABEL_ACIDITY_LEVELS, prefill.get('acidity_level', ''), "add_acidity")

        c1, c2, c3 = st.columns(3)
        window_start = c1.text_input("Drink from", value=prefill.get('drink_window_start', ''))
        window_end = c2.text_input("Drink until", value=prefill.get('drink_window_end', ''))
        quantity = c3.number_input("Bottles", min_value=1, value=1, step=1)

        c1, c2 = st.columns(2)
        purchase_date = c1.text_input("Purchase date")
        purchase_price = c2.text_input("Price")

        tasting_notes = st.text_area("Tasting notes", value=prefill.get('tasting_notes', ''))
        food_pairings = st.text_input("Food pairings", value=prefill.get('food_pairings', ''))

        submitted = st.form_submit_button("💾 Add to Cellar", type="primary")

    if not submitted:
        return
    if not producer.strip() and not name.strip():
        st.error("Enter at least a producer or a wine name.")
        return

    fields = dict(prefill)
    fields.update({
        'producer': producer.strip(),
        'name': name.strip(),
        'vintage': vintage.strip(),
        'wine_type': wine_type,
        'country': country.strip(),
        'region': region.strip(),
        'grape_varieties': grapes.strip(),
        'body': body,
        'tannin_level': tannin,
        'acidity_level': acidity,
        'drink_window_start': window_start.strip(),
        'drink_window_end': window_end.strip(),
        'quantity': str(int(quantity)),
        'purchase_date': purchase_date.strip(),
        'purchase_price': purchase_price.strip(),
        'tasting_notes': tasting_notes.strip(),
        'food_pairings': food_pairings.strip(),
        'front_image': file_to_data_url(front) if front else '',
        'back_image': file_to_data_url(back) if back else '',
    })
    wine = Wine(**fields)

    with ErrorContext("adding wine") as ctx:
        if sb is not None:
            stored = wines_repo.add_wine(sb, wine)
            if stored.front_image or stored.back_image:
                front_url, back_url = upload_wine_images(sb, stored.id, stored.front_image, stored.back_image)
                wines_repo.update_wine(sb, stored.id, {'front_image': front_url, 'back_image': back_url})
            refresh_collection()
        else:
            stored = store.add_wine(wine)

    if ctx.error:
        st.error(ctx.message)
        return

    st.session_state.pop('label_prefill', None)
    st.success(f"✓ Added {stored.display_name}")

    if sb is None and store.added_wines():
        st.download_button(
            "📥 Download my added wines",
            store.export_added_wines(),
            file_name="added-wines.json",
            mime="application/json",
        )


def render_chat_tab(wines, sommelier):
    st.markdown("### 💬 Ask the Sommelier")
    if sommelier is None:
        st.info("Add OPENAI_API_KEY to secrets or .env to chat about your collection.")
        return

    if 'chat_history' not in st.session_state:
        st.session_state['chat_history'] = []

    by_id = {wine.id: wine for wine in wines}

    for turn in st.session_state['chat_history']:
        with st.chat_message(turn['role']):
            st.markdown(_REFERENCE_LINK.sub(r'**\1**', turn['content']))

    prompt = st.chat_input("What should I open with roast lamb?")
    if not prompt:
        return

    with st.chat_message("user"):
        st.markdown(prompt)

    with st.chat_message("assistant"):
        with st.spinner("Thinking..."):
            with ErrorContext("chat") as ctx:
                reply = sommelier.chat(prompt, wines, history=st.session_state['chat_history'])
        if ctx.error:
            st.error(ctx.message)
            return

        st.markdown(_REFERENCE_LINK.sub(r'**\1**', reply.reply))
        cited = [by_id[ref.id] for ref in reply.wine_references if ref.id in by_id]
        if cited:
            st.caption("Mentioned: " + " · ".join(wine.display_name for wine in cited))

    st.session_state['chat_history'].append({"role": "user", "content": prompt})
    st.session_state['chat_history'].append({"role": "assistant", "content": reply.reply})


def main():
    st.markdown("""
<div style="text-align: center; padding: 16px 0 24px 0;">
    <h1 class="main-title">🍷 Cellarbook</h1>
    <p class="subtitle">Know what's in the cellar, and when to open it.</p>
</div>
""", unsafe_allow_html=True)

    sb = get_supabase()
    store = get_overlay_store()
    if sb is None:
        st.caption(f"Local mode: catalog {FilePaths.CATALOG_JSON}, personal data {FilePaths.OVERLAY_JSON}")

    wines, consumed_counts = load_collection(sb, store)
    query = render_sidebar(wines)
    sommelier = load_sommelier()

    tab1, tab2, tab3 = st.tabs(["🍷 Collection", "➕ Add Wine", "💬 Sommelier"])

    with tab1:
        render_collection_tab(wines, consumed_counts, query, sb, store)

    with tab2:
        render_add_tab(sb, store, sommelier)

    with tab3:
        render_chat_tab(wines, sommelier)


if __name__ == "__main__":
    main()
