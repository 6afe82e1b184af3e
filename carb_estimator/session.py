"""
Carb Estimator session state.

The UI never mutates state directly. Every interaction becomes an action, and
``transition`` maps (state, action) to a new immutable SessionState:

    camera --capture/upload--> preview --tap result--> details
    preview/details/settings --dismiss--> camera
    any view --open settings--> settings

Capturing, retrying and returning to a view that needs the API key raise the
credential prompt instead when no key is stored.

``AnalysisSession`` is the single controller that owns the state, the
credential store and the vision client, and runs the inference round-trip.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass, replace
from typing import Literal, Optional, Set, Union

from carb_estimator.cv_food_rec.image_normalizer import (
    EncodedImage,
    exceeds_advisory_limit,
    normalize_image,
)
from carb_estimator.cv_food_rec.openai_vision_client import OpenAIVisionClient
from carb_estimator.errors import CarbEstimatorError, CredentialMissingError
from carb_estimator.models import NormalizationResult, NutritionRecord
from carb_estimator.nutrition.response_normalizer import normalize_response
from carb_estimator.settings_store import CredentialStore

logger = logging.getLogger(__name__)

View = Literal["camera", "preview", "details", "settings"]
Tab = Literal["summary", "items"]

GENERIC_ERROR = "An unknown error occurred"
OVERSIZED_NOTICE = "Image must be less than 5MB. Compressing..."


# ============================================
# State
# ============================================

@dataclass(frozen=True)
class SessionState:
    view: View = "camera"
    credential: Optional[str] = None
    show_credential_prompt: bool = False
    captured_image: Optional[EncodedImage] = None
    record: Optional[NutritionRecord] = None
    raw_response: Optional[str] = None
    # Failure message, or the estimate warning shown next to a record
    error: Optional[str] = None
    estimated: bool = False
    is_loading: bool = False
    is_uploading: bool = False
    # Sequence number of the latest issued inference request
    request_seq: int = 0
    active_tab: Tab = "summary"
    # Transient message for toasts (rejected uploads, compression notes)
    notice: Optional[str] = None

    @property
    def has_credential(self) -> bool:
        return bool(self.credential)


def initial_state(credential: Optional[str] = None) -> SessionState:
    """Starting state; the camera view prompts for a key when none is stored."""
    credential = (credential or "").strip() or None
    return SessionState(credential=credential, show_credential_prompt=credential is None)


# ============================================
# Actions
# ============================================

@dataclass(frozen=True)
class ImageCaptured:
    image: EncodedImage


@dataclass(frozen=True)
class RetryRequested:
    pass


@dataclass(frozen=True)
class AnalysisSucceeded:
    seq: int
    result: NormalizationResult
    raw_response: str


@dataclass(frozen=True)
class AnalysisFailed:
    seq: int
    message: str


@dataclass(frozen=True)
class ResultTapped:
    pass


@dataclass(frozen=True)
class PreviewReopened:
    pass


@dataclass(frozen=True)
class Dismissed:
    pass


@dataclass(frozen=True)
class SettingsOpened:
    pass


@dataclass(frozen=True)
class CredentialSaved:
    credential: str


@dataclass(frozen=True)
class CredentialRequested:
    pass


@dataclass(frozen=True)
class CredentialPromptClosed:
    pass


@dataclass(frozen=True)
class TabSelected:
    tab: Tab


@dataclass(frozen=True)
class UploadStarted:
    notice: Optional[str] = None


@dataclass(frozen=True)
class UploadRejected:
    message: str


@dataclass(frozen=True)
class NoticeDismissed:
    pass


Action = Union[
    ImageCaptured,
    RetryRequested,
    AnalysisSucceeded,
    AnalysisFailed,
    ResultTapped,
    PreviewReopened,
    Dismissed,
    SettingsOpened,
    CredentialSaved,
    CredentialRequested,
    CredentialPromptClosed,
    TabSelected,
    UploadStarted,
    UploadRejected,
    NoticeDismissed,
]


def _start_request(state: SessionState, image: EncodedImage) -> SessionState:
    return replace(
        state,
        view="preview",
        captured_image=image,
        record=None,
        raw_response=None,
        error=None,
        estimated=False,
        is_loading=True,
        is_uploading=False,
        request_seq=state.request_seq + 1,
        active_tab="summary",
        show_credential_prompt=False,
    )


def transition(state: SessionState, action: Action) -> SessionState:
    """Apply one action and return the resulting state."""
    if isinstance(action, ImageCaptured):
        if not state.has_credential:
            return replace(state, show_credential_prompt=True, is_uploading=False)
        return _start_request(state, action.image)

    if isinstance(action, RetryRequested):
        if state.captured_image is None:
            return state
        if not state.has_credential:
            return replace(state, show_credential_prompt=True)
        return _start_request(state, state.captured_image)

    if isinstance(action, AnalysisSucceeded):
        if action.seq != state.request_seq:
            logger.info(f"Discarding stale analysis result #{action.seq} (latest is #{state.request_seq})")
            return state
        return replace(
            state,
            record=action.result.record,
            raw_response=action.raw_response,
            estimated=action.result.estimated,
            error=action.result.warning,
            is_loading=False,
        )

    if isinstance(action, AnalysisFailed):
        if action.seq != state.request_seq:
            logger.info(f"Discarding stale analysis failure #{action.seq} (latest is #{state.request_seq})")
            return state
        return replace(
            state,
            record=None,
            estimated=False,
            error=action.message or GENERIC_ERROR,
            is_loading=False,
        )

    if isinstance(action, ResultTapped):
        if state.view == "preview" and state.record is not None and not state.is_loading:
            return replace(state, view="details", active_tab="summary")
        return state

    if isinstance(action, PreviewReopened):
        if state.captured_image is None:
            return state
        if not state.has_credential:
            return replace(state, show_credential_prompt=True)
        return replace(state, view="preview")

    if isinstance(action, Dismissed):
        return replace(state, view="camera", show_credential_prompt=not state.has_credential)

    if isinstance(action, SettingsOpened):
        return replace(state, view="settings", show_credential_prompt=False)

    if isinstance(action, CredentialSaved):
        credential = (action.credential or "").strip() or None
        return replace(state, credential=credential, show_credential_prompt=False)

    if isinstance(action, CredentialRequested):
        return replace(state, show_credential_prompt=True, is_uploading=False)

    if isinstance(action, CredentialPromptClosed):
        return replace(state, show_credential_prompt=False)

    if isinstance(action, TabSelected):
        return replace(state, active_tab=action.tab)

    if isinstance(action, UploadStarted):
        return replace(state, is_uploading=True, notice=action.notice)

    if isinstance(action, UploadRejected):
        return replace(state, is_uploading=False, notice=action.message)

    if isinstance(action, NoticeDismissed):
        return replace(state, notice=None)

    raise TypeError(f"Unknown session action: {action!r}")


# ============================================
# Controller
# ============================================

class AnalysisSession:
    """
    Owns the session state and runs captures through the analysis pipeline.

    Capture -> normalize image -> vision model -> normalize response.
    Every failure along the way ends up in ``state``; nothing is raised to
    the caller.
    """

    def __init__(
        self,
        store: CredentialStore,
        client: OpenAIVisionClient,
        fallback_credential: Optional[str] = None,
    ) -> None:
        self.store = store
        self.client = client
        self.state = initial_state(store.load() or fallback_credential)

    def dispatch(self, action: Action) -> SessionState:
        self.state = transition(self.state, action)
        return self.state

    def save_credential(self, credential: str) -> None:
        self.store.save(credential)
        self.dispatch(CredentialSaved(credential))

    def submit_image(self, data: bytes, mime_type: Optional[str] = None) -> SessionState:
        """Normalize a captured or uploaded image and analyze it."""
        if not self.state.has_credential:
            # Nothing is decoded or sent before a key exists
            return self.dispatch(CredentialRequested())

        notice = OVERSIZED_NOTICE if exceeds_advisory_limit(len(data or b"")) else None
        self.dispatch(UploadStarted(notice=notice))

        try:
            image = normalize_image(data, mime_type)
        except CarbEstimatorError as e:
            logger.warning(f"Image rejected: {e}")
            return self.dispatch(UploadRejected(str(e)))

        self.dispatch(ImageCaptured(image))
        return self._analyze()

    def retry(self) -> SessionState:
        """Re-run the round-trip on the image already captured."""
        before = self.state.request_seq
        self.dispatch(RetryRequested())
        if self.state.request_seq == before:
            return self.state
        return self._analyze()

    def _analyze(self) -> SessionState:
        seq = self.state.request_seq
        image = self.state.captured_image

        try:
            raw = self.client.complete(image, self.state.credential)
        except CredentialMissingError:
            self.dispatch(AnalysisFailed(seq, "An OpenAI API key is required"))
            return self.dispatch(CredentialRequested())
        except CarbEstimatorError as e:
            logger.error(f"Analysis #{seq} failed: {e}")
            return self.dispatch(AnalysisFailed(seq, str(e)))
        except Exception as e:
            logger.exception(f"Analysis #{seq} failed unexpectedly")
            return self.dispatch(AnalysisFailed(seq, str(e) or GENERIC_ERROR))

        result = normalize_response(raw)
        if result.estimated:
            logger.warning(f"Analysis #{seq} fell back to estimated values")
        else:
            logger.info(f"Analysis #{seq} parsed ({result.strategy}): {result.record.total_carbs}g carbs")
        return self.dispatch(AnalysisSucceeded(seq, result, raw))


# ============================================
# Submission tracking
# ============================================

class SubmissionTracker:
    """
    Remembers which captured/uploaded files were already submitted.

    Streamlit widgets keep returning the same file on every rerun, so each
    file is submitted once. A file blocked only because no API key was
    stored stays eligible and is submitted again once a key exists.
    """

    def __init__(self) -> None:
        self.submitted: Set[str] = set()
        self.awaiting_credential: Set[str] = set()

    @staticmethod
    def digest(data: bytes) -> str:
        return hashlib.sha256(data).hexdigest()

    def should_submit(self, digest: str, state: SessionState) -> bool:
        if digest in self.submitted:
            return False
        if digest in self.awaiting_credential:
            return state.has_credential
        return True

    def record(self, digest: str, state: SessionState) -> None:
        """Record the outcome of submitting ``digest``, given the resulting state."""
        if state.has_credential:
            self.awaiting_credential.discard(digest)
            self.submitted.add(digest)
        else:
            self.awaiting_credential.add(digest)
