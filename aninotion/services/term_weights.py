"""
TF-IDF term-weight model over a candidate pool.

The model is rebuilt for every engine call from the pool it is given and is
never stored on shared state. Weights follow the classic scheme:

    tf(t, d)  = raw count of t in d
    idf(t)    = 1 + ln(N / (1 + df(t)))
    w(t, d)   = tf(t, d) * idf(t)

where N is the number of posts in the pool (not a global corpus). Vocabulary
order comes from CountVectorizer and is sorted, so the same ordered pool
always yields the same vectors.
"""

import logging
from dataclasses import dataclass
from typing import Sequence

import numpy as np
from scipy.sparse import csr_matrix, diags
from sklearn.feature_extraction.text import CountVectorizer
from sklearn.metrics.pairwise import cosine_similarity

from aninotion.services.text_processing import compose_document

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TermWeightModel:
    """One sparse TF-IDF row per post, in pool order."""

    matrix: csr_matrix
    vocabulary: tuple[str, ...]

    def __len__(self) -> int:
        return self.matrix.shape[0]

    def vector_of(self, index: int) -> dict[str, float]:
        """Term -> weight mapping for the post at ``index``."""
        start, end = self.matrix.indptr[index], self.matrix.indptr[index + 1]
        return {
            self.vocabulary[col]: float(weight)
            for col, weight in zip(
                self.matrix.indices[start:end], self.matrix.data[start:end]
            )
        }

    def similarities_to(self, index: int) -> np.ndarray:
        """Cosine similarity of post ``index`` against every post in the pool."""
        if self.matrix.shape[1] == 0:
            return np.zeros(len(self))
        sims = cosine_similarity(self.matrix[index], self.matrix).ravel()
        # Float error can push identical documents a hair past 1.0
        return np.clip(sims, 0.0, 1.0)


def build(posts: Sequence) -> TermWeightModel:
    """Build the term-weight model for an ordered list of posts."""
    documents = [compose_document(post) for post in posts]

    if not any(documents):
        # CountVectorizer refuses an empty vocabulary
        return TermWeightModel(matrix=csr_matrix((len(documents), 0)), vocabulary=())

    vectorizer = CountVectorizer(analyzer=str.split)
    counts = vectorizer.fit_transform(documents).astype(np.float64).tocsr()

    n_docs = counts.shape[0]
    doc_freq = np.bincount(counts.indices, minlength=counts.shape[1])
    idf = 1.0 + np.log(n_docs / (1.0 + doc_freq))

    weights = (counts @ diags(idf)).tocsr()
    weights.sort_indices()

    logger.info(f"Term-weight model built with {n_docs} documents")

    return TermWeightModel(
        matrix=weights,
        vocabulary=tuple(vectorizer.get_feature_names_out()),
    )
