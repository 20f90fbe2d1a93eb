"""
Hypothesis Strategies for Property-Based Testing

Custom strategies for generating export jobs, lifecycle actions and byte
ranges.
"""

import string

from hypothesis import strategies as st

from export_engine.domain.export_jobs.entities import ExportJob

# =============================================================================
# Primitive Strategies
# =============================================================================

identifiers = st.text(alphabet=string.ascii_lowercase + string.digits + "-", min_size=1, max_size=12)

step_name_lists = st.lists(
    st.text(alphabet=string.ascii_lowercase + "_", min_size=1, max_size=16),
    min_size=1,
    max_size=8,
    unique=True,
)

retention_days = st.integers(min_value=1, max_value=365)

fractions = st.floats(min_value=-0.5, max_value=1.5, allow_nan=False)


# =============================================================================
# Domain Strategies
# =============================================================================

@st.composite
def export_jobs(draw) -> ExportJob:
    """A fresh pending job with a random pipeline."""
    return ExportJob.create(
        target_id=draw(identifiers),
        owner_id=draw(identifiers),
        step_names=draw(step_name_lists),
        retention_days=draw(retention_days),
    )


# Runner and caller actions, applied blindly; illegal ones must be rejected
# without changing the job.
lifecycle_actions = st.lists(
    st.one_of(
        st.just(("start",)),
        st.just(("begin_next",)),
        st.tuples(st.just("progress"), fractions),
        st.just(("complete_current",)),
        st.just(("fail_current",)),
        st.just(("complete",)),
        st.just(("cancel",)),
    ),
    max_size=40,
)


@st.composite
def package_sizes_and_ranges(draw):
    """A package size with a satisfiable (start, end) byte range inside it."""
    size = draw(st.integers(min_value=1, max_value=5000))
    start = draw(st.integers(min_value=0, max_value=size - 1))
    end = draw(st.integers(min_value=start, max_value=size - 1))
    return size, start, end
