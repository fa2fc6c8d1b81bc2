"""Shared fixtures: two revisions of a small manuscript and its .aux file."""

import pytest

from paradiff import Metadata, extract_paragraphs

OLD_DOC = r"""\documentclass{article}
\begin{document}
\section{Introduction}

\paralabel{par:intro}
Maps are useful \cite{zhang2023}.
See Figure~\ref{fig:map}.

\paralabel{par:method}
We use \texttt{gdal} to process data.

\paralabel{par:gone}
This paragraph is removed.

\end{document}
"""

NEW_DOC = r"""\documentclass{article}
\begin{document}
\section{Introduction}

\paralabel{par:intro}
Maps are very useful \cite{zhang2023,smith2020}.
See Figure~\ref{fig:map}.

\paralabel{par:method}
We use \texttt{gdal} to process data.

\paralabel{par:added}
A brand new paragraph.

\end{document}
"""

AUX = r"""\relax
\bibcite{zhang2023}{{73}{2023}{{Zhang et~al.\spacefactor \@m {}}}{{}}}
\bibcite{smith2020}{{12}{2020}{{Smith and~Jones}}{{}}}
\bibcite{broken}{{1}}
\newlabel{fig:map}{{7}{15}{Ohio}{figure.7}{}}
\newlabel{sec:intro}{{1}{1}{Introduction}{section.1}{}}
\newlabel{bad}
"""


@pytest.fixture
def old_paragraphs():
    return extract_paragraphs(OLD_DOC)


@pytest.fixture
def new_paragraphs():
    return extract_paragraphs(NEW_DOC)


@pytest.fixture
def metadata():
    return Metadata.from_text(AUX)


@pytest.fixture
def manuscript(tmp_path):
    """Old, new and aux files written to a temporary directory."""
    old_file = tmp_path / "old.tex"
    new_file = tmp_path / "new.tex"
    aux_file = tmp_path / "new.aux"
    old_file.write_text(OLD_DOC, encoding="utf8")
    new_file.write_text(NEW_DOC, encoding="utf8")
    aux_file.write_text(AUX, encoding="utf8")
    return str(old_file), str(new_file), str(aux_file)
