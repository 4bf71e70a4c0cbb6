"""
Word picker vocabulary: categories, subjects, core words and predicates.
"""
import yaml
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class WordOption:
    """One selectable word."""
    id: str
    label: str
    question: bool = False  # subject that turns the sentence into a question


@dataclass
class Vocabulary:
    """All option tables of the picker."""
    categories: List[WordOption]
    subjects: List[WordOption] = field(default_factory=list)
    core_words: Dict[str, List[WordOption]] = field(default_factory=dict)
    predicates: Dict[str, List[WordOption]] = field(default_factory=dict)
    subject_predicates: Dict[str, List[WordOption]] = field(default_factory=dict)

    def core_words_for(self, category: Optional[str]) -> List[WordOption]:
        if not category:
            return []
        return self.core_words.get(category, [])

    def predicates_for(self, category: Optional[str], core_word: Optional[str] = None) -> List[WordOption]:
        """Predicates by "<category>_<core word>", or by category when no core word is used."""
        if not category:
            return []
        if core_word:
            return self.predicates.get(f"{category}_{core_word}", [])
        return self.subject_predicates.get(category, [])


def find_option(options: List[WordOption], option_id: Optional[str]) -> Optional[WordOption]:
    """Option with the given id, or None."""
    if not option_id:
        return None
    for option in options:
        if option.id == option_id:
            return option
    return None


def load_vocabulary(path: Optional[str] = None) -> Vocabulary:
    """
    Load vocabulary from YAML file.

    Args:
        path: Path to vocabulary file. If None, uses vocabulary.default.yaml

    Returns:
        Vocabulary with all option tables
    """
    if path is None:
        path = Path(__file__).parent / "vocabulary.default.yaml"

    vocab_path = Path(path)
    if not vocab_path.exists():
        raise FileNotFoundError(f"Vocabulary file not found: {vocab_path}")

    with open(vocab_path, 'r', encoding='utf-8') as f:
        data = yaml.safe_load(f)

    return _dict_to_vocabulary(data)


def _options(items: Optional[List[Dict[str, Any]]]) -> List[WordOption]:
    return [
        WordOption(id=str(item['id']), label=str(item['label']), question=bool(item.get('question', False)))
        for item in (items or [])
    ]


def _option_table(data: Optional[Dict[str, Any]]) -> Dict[str, List[WordOption]]:
    return {str(key): _options(items) for key, items in (data or {}).items()}


def _dict_to_vocabulary(data: Dict[str, Any]) -> Vocabulary:
    """Convert dictionary to vocabulary object."""
    return Vocabulary(
        categories=_options(data['categories']),
        subjects=_options(data.get('subjects')),
        core_words=_option_table(data.get('core_words')),
        predicates=_option_table(data.get('predicates')),
        subject_predicates=_option_table(data.get('subject_predicates'))
    )
