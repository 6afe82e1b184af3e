import logging
import sys
from pathlib import Path

import streamlit as st

# Add project root to path
PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.append(str(PROJECT_ROOT))

from carb_estimator.config import get_settings
from carb_estimator.cv_food_rec.image_normalizer import UPLOAD_EXTENSIONS
from carb_estimator.cv_food_rec.openai_vision_client import OpenAIVisionClient
from carb_estimator.presentation import (
    carbs_per_100g,
    confidence_color,
    confidence_label,
    confidence_percentage,
    format_grams,
)
from carb_estimator.session import (
    AnalysisSession,
    CredentialPromptClosed,
    Dismissed,
    NoticeDismissed,
    PreviewReopened,
    ResultTapped,
    SettingsOpened,
    SubmissionTracker,
    TabSelected,
)
from carb_estimator.settings_store import CredentialStore

settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

TAB_LABELS = {"summary": "Summary", "items": "Food Items"}

# Page Config
st.set_page_config(
    page_title="Carb Estimator",
    page_icon="🍽️",
    layout="centered"
)

# Initialize session controller (one per browser session)
if "analysis_session" not in st.session_state:
    st.session_state.analysis_session = AnalysisSession(
        store=CredentialStore(settings.settings_path),
        client=OpenAIVisionClient(
            base_url=settings.openai_base_url,
            model=settings.openai_model,
            timeout=settings.request_timeout,
        ),
        fallback_credential=settings.openai_api_key,
    )
    st.session_state.submissions = SubmissionTracker()

session: AnalysisSession = st.session_state.analysis_session


def _go(action) -> None:
    session.dispatch(action)
    st.rerun()


def _submit(data: bytes, mime_type: str) -> None:
    submissions: SubmissionTracker = st.session_state.submissions
    digest = submissions.digest(data)
    if not submissions.should_submit(digest, session.state):
        return
    logger.info(f"Submitting {len(data)}-byte image ({mime_type})")

    with st.spinner("Analyzing..."):
        state = session.submit_image(data, mime_type)
    submissions.record(digest, state)
    st.rerun()


def render_credential_prompt() -> None:
    with st.form("credential_prompt"):
        st.subheader("Enter OpenAI API Key")
        key = st.text_input("API key", type="password", placeholder="sk-...")
        st.caption("Your API key is stored locally and never sent to our servers.")
        col_cancel, col_save = st.columns(2)
        cancelled = col_cancel.form_submit_button("Cancel")
        saved = col_save.form_submit_button("Save", type="primary")

    if saved and key.strip():
        session.save_credential(key)
        st.rerun()
    elif saved:
        st.warning("Please enter an API key.")
    elif cancelled:
        _go(CredentialPromptClosed())


def render_camera() -> None:
    state = session.state
    st.title("Carb Estimator")
    st.markdown("Snap or upload a meal photo to estimate its carbohydrates.")

    photo = st.camera_input("Take a photo", label_visibility="collapsed")
    uploaded = st.file_uploader(
        "📸 Upload from gallery",
        type=list(UPLOAD_EXTENSIONS),
        disabled=state.is_uploading,
    )

    col_last, col_settings = st.columns(2)
    if col_last.button("🖼️ Last photo", disabled=state.captured_image is None, use_container_width=True):
        _go(PreviewReopened())
    if col_settings.button("⚙️ Settings", use_container_width=True):
        _go(SettingsOpened())

    if photo is not None:
        _submit(photo.getvalue(), photo.type or "image/jpeg")
    elif uploaded is not None:
        _submit(uploaded.getvalue(), uploaded.type)


def render_preview() -> None:
    state = session.state
    if st.button("✖ Close"):
        _go(Dismissed())

    if state.captured_image is not None:
        st.image(state.captured_image.data, caption="Captured meal", use_container_width=True)

    if state.is_loading:
        st.info("Analyzing...")
    elif state.record is None and state.error:
        st.error(f"Error: {state.error}")
        col_retry, col_key = st.columns(2)
        if col_retry.button("Retry", type="primary", use_container_width=True):
            with st.spinner("Analyzing..."):
                session.retry()
            st.rerun()
        if col_key.button("Update API Key", use_container_width=True):
            _go(SettingsOpened())
    elif state.record is not None:
        st.metric("Total Carbs", format_grams(state.record.total_carbs))
        if state.error:
            st.warning(state.error)
        if st.button("Tap for details", type="primary", use_container_width=True):
            _go(ResultTapped())


def _estimate_warning() -> None:
    if session.state.error:
        st.warning(f"**Estimated Values**\n\n{session.state.error}")


def render_details() -> None:
    state = session.state
    col_close, col_settings = st.columns([4, 1])
    if col_close.button("✖ Close"):
        _go(Dismissed())
    if col_settings.button("⚙️", help="Settings"):
        _go(SettingsOpened())
    st.title("Meal Analysis")

    record = state.record
    if record is None:
        return

    tab = st.radio(
        "Section",
        list(TAB_LABELS),
        index=list(TAB_LABELS).index(state.active_tab),
        format_func=TAB_LABELS.get,
        horizontal=True,
        label_visibility="collapsed",
    )
    if tab != state.active_tab:
        _go(TabSelected(tab))

    if tab == "summary":
        _estimate_warning()
        st.metric("Total Carbohydrates", format_grams(record.total_carbs))
        col_fiber, col_sugar, col_starch = st.columns(3)
        col_fiber.metric("Fiber", format_grams(record.breakdown.fiber), help="Indigestible carbs")
        col_sugar.metric("Sugar", format_grams(record.breakdown.sugar), help="Simple carbs")
        col_starch.metric("Starch", format_grams(record.breakdown.starch), help="Complex carbs")

        if state.raw_response:
            with st.expander("View AI Response"):
                st.code(state.raw_response)

    else:
        _estimate_warning()
        st.subheader("Food Items")
        st.caption("Breakdown of individual food items with estimated weights and carbohydrate content")

        if not record.food_items:
            st.info("No individual food items identified")

        for item in record.food_items:
            with st.container(border=True):
                col_name, col_conf = st.columns([3, 2])
                col_name.markdown(f"**{item.name}**")
                color = confidence_color(item.confidence)
                col_conf.markdown(f":{color}[{confidence_label(item.confidence)} confidence]")
                st.progress(confidence_percentage(item.confidence))
                st.markdown(f"Estimated weight: **{format_grams(item.weight)}**")
                st.markdown(f"Carbohydrates: **{format_grams(item.carbs)}**")
                density = carbs_per_100g(item)
                if density is not None:
                    st.caption(f"{density:.1f}g carbs per 100g")


def render_settings() -> None:
    state = session.state
    if st.button("✖ Close"):
        _go(Dismissed())
    st.title("Settings")

    st.subheader("OpenAI API Key")
    key = st.text_input("API key", type="password", placeholder="Enter your OpenAI API key",
                        value=state.credential or "")
    if st.button("Save API Key", type="primary", disabled=not key.strip(), use_container_width=True):
        session.save_credential(key)
        st.rerun()
    if state.has_credential:
        st.success("API key is saved")

    st.subheader("About")
    st.markdown(
        "This app uses OpenAI's vision capabilities to estimate the carbohydrate content of your meals. "
        "Your API key is stored locally on your device and is never sent to our servers."
    )
    st.caption(
        "Note: Carbohydrate estimates are approximations and may not be exact. For precise nutritional "
        "information, consult a nutritionist or use specialized food databases."
    )


VIEWS = {
    "camera": render_camera,
    "preview": render_preview,
    "details": render_details,
    "settings": render_settings,
}

if session.state.notice:
    st.toast(session.state.notice)
    session.dispatch(NoticeDismissed())

if session.state.show_credential_prompt:
    render_credential_prompt()

VIEWS[session.state.view]()
