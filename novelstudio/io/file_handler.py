"""File handling utilities and project export transforms."""

import html
import json
import os
import tempfile
import yaml
from pathlib import Path
from typing import Any, Dict, Union
from docx import Document as DocxDocument
import markdown
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..core.project import Project

EXPORT_FORMATS = ("txt", "html", "docx", "json")


class FileHandler:
    """Handles reading and writing various file formats."""

    def read_file(self, file_path: Union[str, Path]) -> str:
        """Read text content from various file formats."""
        path = Path(file_path)

        if path.suffix.lower() == '.docx':
            return self._read_docx(path)
        else:
            # Plain text and markdown
            return path.read_text(encoding='utf-8')

    @retry(
        retry=retry_if_exception_type(OSError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.1, max=1),
        reraise=True,
    )
    def write_file(self, file_path: Union[str, Path], content: str) -> None:
        """Write content atomically: a temp file in the same directory replaces the target."""
        path = Path(file_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                f.write(content)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def read_json(self, file_path: Union[str, Path]) -> Any:
        """Read JSON file."""
        path = Path(file_path)
        with path.open('r', encoding='utf-8') as f:
            return json.load(f)

    def write_json(self, file_path: Union[str, Path], data: Any) -> None:
        """Write JSON file."""
        self.write_file(file_path, json.dumps(data, indent=2, ensure_ascii=False))

    def read_yaml(self, file_path: Union[str, Path]) -> Dict[str, Any]:
        """Read YAML file."""
        path = Path(file_path)
        with path.open('r', encoding='utf-8') as f:
            return yaml.safe_load(f)

    def write_yaml(self, file_path: Union[str, Path], data: Dict[str, Any]) -> None:
        """Write YAML file."""
        self.write_file(file_path, yaml.safe_dump(data, default_flow_style=False, allow_unicode=True))

    def _read_docx(self, path: Path) -> str:
        """Read DOCX file."""
        doc = DocxDocument(path)
        return '\n'.join(paragraph.text for paragraph in doc.paragraphs)

    # Export transforms. All are read-only and follow chapter order, never ids.

    def to_plain_text(self, project: Project) -> str:
        """Title, synopsis, then each chapter's heading and prose."""
        parts = [f"《{project.title}》\n简介：{project.architecture.main_plot}\n"]
        for number, chapter in enumerate(project.chapters, start=1):
            parts.append(f"\n第{number}章 {chapter.title}\n{project.get_content(chapter.id)}")
        return parts[0] + "\n".join(parts[1:])

    def to_html(self, project: Project) -> str:
        """Minimal HTML document; line breaks inside prose are kept."""
        body = [f"<h1>{html.escape(project.title)}</h1>"]
        for chapter in project.chapters:
            prose = markdown.markdown(project.get_content(chapter.id), extensions=['nl2br'])
            body.append(f"<h2>{html.escape(chapter.title)}</h2>\n{prose}")
        return (
            "<html><head><meta charset='utf-8'>"
            f"<title>{html.escape(project.title)}</title></head><body>\n"
            + "\n".join(body)
            + "\n</body></html>"
        )

    def export_project(self, project: Project, file_path: Union[str, Path], format_type: str = "txt") -> Path:
        """
        Export a project to a file.

        Args:
            project: Project to export
            file_path: Path to output file
            format_type: One of "txt", "html", "docx", "json"
        """
        path = Path(file_path)
        format_type = format_type.lower()

        if format_type == "txt":
            self.write_file(path, self.to_plain_text(project))
        elif format_type == "html":
            self.write_file(path, self.to_html(project))
        elif format_type == "docx":
            self._export_as_docx(project, path)
        elif format_type == "json":
            self.write_json(path, project.to_dict())
        else:
            raise ValueError(f"Unsupported format: {format_type}")
        return path

    def _export_as_docx(self, project: Project, path: Path) -> None:
        """Export chapters as DOCX file."""
        doc = DocxDocument()
        doc.add_heading(project.title, level=0)
        if project.architecture.main_plot:
            doc.add_paragraph(project.architecture.main_plot)

        for number, chapter in enumerate(project.chapters, start=1):
            doc.add_page_break()
            doc.add_heading(f"第{number}章 {chapter.title}", level=1)
            for paragraph in project.get_content(chapter.id).split('\n'):
                if paragraph.strip():
                    doc.add_paragraph(paragraph)

        path.parent.mkdir(parents=True, exist_ok=True)
        doc.save(path)
