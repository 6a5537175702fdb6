from __future__ import annotations

from ._core_base import *  # noqa: F401,F403

ELF_MAGIC = b"\x7fELF"

_PERL_ASSIGN_RE = re.compile(r"\A\s*\$\w+\s*=\s*")
_PERL_TOKEN_RE = re.compile(
    r"""
    \s*(?:
        (?P<punct>=>|[{}\[\],;])
      | '(?P<squote>(?:[^'\\]|\\.)*)'
      | "(?P<dquote>(?:[^"\\]|\\.)*)"
      | (?P<number>-?\d+(?:\.\d+)?(?:[eE][-+]?\d+)?)(?![\w.])
      | (?P<word>[A-Za-z_][\w:]*)
    )
    """,
    re.VERBOSE | re.DOTALL,
)
_PERL_DQUOTE_ESCAPES = {
    "n": "\n",
    "t": "\t",
    "r": "\r",
    "f": "\f",
    "e": "\x1b",
    "a": "\x07",
    "0": "\0",
}


def _unescape_single_quoted(value: str) -> str:
    return re.sub(r"\\([\\'])", r"\1", value)


def _unescape_double_quoted(value: str) -> str:
    def _replace(match: re.Match[str]) -> str:
        text = match.group(0)
        if text.startswith("\\x{"):
            return chr(int(text[3:-1], 16))
        if text.startswith("\\x"):
            return chr(int(text[2:], 16))
        char = text[1]
        return _PERL_DQUOTE_ESCAPES.get(char, char)

    return re.sub(r"\\x\{[0-9a-fA-F]+\}|\\x[0-9a-fA-F]{1,2}|\\.", _replace, value, flags=re.DOTALL)


def _tokenize_perl_literal(text: str, label: str) -> list[tuple[str, str]]:
    tokens: list[tuple[str, str]] = []
    pos = 0
    end = len(text.rstrip())
    while pos < end:
        match = _PERL_TOKEN_RE.match(text, pos)
        if match is None or match.end() == pos:
            snippet = text[pos : pos + 40].strip()
            raise AbiViewerError(f"Unable to parse ABI dump '{label}' near: {snippet!r}")
        kind = match.lastgroup or ""
        tokens.append((kind, match.group(kind)))
        pos = match.end()
    return tokens


class _PerlLiteralParser:
    def __init__(self, tokens: list[tuple[str, str]], label: str) -> None:
        self.tokens = tokens
        self.label = label
        self.index = 0

    def _peek(self) -> tuple[str, str] | None:
        if self.index < len(self.tokens):
            return self.tokens[self.index]
        return None

    def _next(self) -> tuple[str, str]:
        token = self._peek()
        if token is None:
            raise AbiViewerError(f"Unexpected end of ABI dump '{self.label}'.")
        self.index += 1
        return token

    def _expect(self, punct: str) -> None:
        kind, value = self._next()
        if kind != "punct" or value != punct:
            raise AbiViewerError(f"ABI dump '{self.label}': expected '{punct}', found '{value}'.")

    def _at(self, punct: str) -> bool:
        token = self._peek()
        return token is not None and token[0] == "punct" and token[1] == punct

    def parse_value(self) -> Any:
        kind, value = self._next()
        if kind == "punct" and value == "{":
            return self._parse_hash()
        if kind == "punct" and value == "[":
            return self._parse_array()
        if kind == "squote":
            return _unescape_single_quoted(value)
        if kind == "dquote":
            return _unescape_double_quoted(value)
        if kind == "number":
            if re.fullmatch(r"-?\d+", value):
                return int(value)
            return float(value)
        if kind == "word" and value == "undef":
            return None
        raise AbiViewerError(f"ABI dump '{self.label}': unsupported value '{value}'.")

    def _parse_key(self) -> str:
        kind, value = self._next()
        if kind == "squote":
            return _unescape_single_quoted(value)
        if kind == "dquote":
            return _unescape_double_quoted(value)
        if kind in {"number", "word"}:
            return value
        raise AbiViewerError(f"ABI dump '{self.label}': invalid hash key '{value}'.")

    def _parse_hash(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        while not self._at("}"):
            key = self._parse_key()
            self._expect("=>")
            out[key] = self.parse_value()
            if self._at(","):
                self.index += 1
        self._expect("}")
        return out

    def _parse_array(self) -> list[Any]:
        out: list[Any] = []
        while not self._at("]"):
            out.append(self.parse_value())
            if self._at(","):
                self.index += 1
        self._expect("]")
        return out


def parse_perl_dump(text: str, label: str = "<text>") -> Any:
    """Read a Data::Dumper literal (``$VAR1 = {...};``) into Python values.

    Only the subset emitted by abi-dumper is understood: hashes, arrays,
    quoted strings, bare numbers and ``undef``.
    """
    match = _PERL_ASSIGN_RE.match(text)
    body = text[match.end() :] if match else text
    tokens = _tokenize_perl_literal(body, label)
    if not tokens:
        raise AbiViewerError(f"ABI dump '{label}' is empty.")
    parser = _PerlLiteralParser(tokens, label)
    value = parser.parse_value()
    while parser._at(";"):
        parser.index += 1
    if parser._peek() is not None:
        raise AbiViewerError(f"ABI dump '{label}' has trailing content after the top-level value.")
    return value


def read_dump_payload(path: Path) -> dict[str, Any]:
    if path.is_dir():
        candidate = path / "ABI.dump"
        if not candidate.is_file():
            raise AbiViewerError(f"Incorrect format of input data: '{candidate}' is not found.")
        path = candidate
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise AbiViewerError(f"Unable to read ABI dump '{path}': {exc}") from exc
    except UnicodeDecodeError as exc:
        raise AbiViewerError(f"ABI dump '{path}' is not a text file.") from exc

    stripped = text.lstrip()
    if stripped.startswith("{"):
        try:
            payload = json.loads(stripped)
        except json.JSONDecodeError as exc:
            raise AbiViewerError(f"Invalid JSON in ABI dump '{path}': {exc}") from exc
    else:
        payload = parse_perl_dump(text, str(path))
    if not isinstance(payload, dict):
        raise AbiViewerError(f"ABI dump '{path}' root must be an object.")
    return payload


def is_elf_object(path: Path) -> bool:
    if not path.is_file():
        return False
    try:
        with path.open("rb") as handle:
            return handle.read(4) == ELF_MAGIC
    except OSError:
        return False


def default_library_version(object_path: Path) -> str | None:
    match = re.search(r"\.so\.(.+)\Z", object_path.name)
    if match:
        return match.group(1)
    return None


def get_dumper_version(dumper: str = ABI_DUMPER) -> str:
    executable = shutil.which(dumper)
    if executable is None:
        raise AbiViewerError(f"'{dumper}' is not found. Install abi-dumper {ABI_DUMPER_MIN_VERSION} or newer.")
    try:
        proc = subprocess.run([executable, "-dumpversion"], check=True, capture_output=True, text=True)
    except subprocess.CalledProcessError as exc:
        message = exc.stderr.strip() or exc.stdout.strip() or "unknown failure"
        raise AbiViewerError(f"Unable to query '{dumper}' version: {message}") from exc
    return proc.stdout.strip()


def build_dumper_command(
    object_path: Path,
    output_dir: Path,
    dumper: str = ABI_DUMPER,
    library_version: str | None = None,
    skip_cxx: bool = False,
    public_headers: Path | None = None,
    ignore_tags: Path | None = None,
    kernel_export: bool = False,
    symbols_list: Path | None = None,
) -> list[str]:
    command = [
        dumper,
        str(object_path),
        "-o",
        str(output_dir / "ABI.dump"),
        "-extra-info",
        str(output_dir / "debug"),
        "-extra-dump",
    ]
    version = library_version if library_version is not None else default_library_version(object_path)
    if version:
        command.extend(["-lver", version])
    if skip_cxx:
        command.append("-skip-cxx")
    if public_headers is not None:
        command.extend(["-public-headers", str(public_headers)])
    if ignore_tags is not None:
        command.extend(["-ignore-tags", str(ignore_tags)])
    if kernel_export:
        command.append("-kernel-export")
    if symbols_list is not None:
        command.extend(["-symbols-list", str(symbols_list)])
    return command


def create_dump(
    object_path: Path,
    output_dir: Path,
    dumper: str = ABI_DUMPER,
    library_version: str | None = None,
    skip_cxx: bool = False,
    public_headers: Path | None = None,
    ignore_tags: Path | None = None,
    kernel_export: bool = False,
    symbols_list: Path | None = None,
) -> Path:
    if not is_elf_object(object_path):
        raise AbiViewerError(f"Input file should be an ABI dump or a shared object: '{object_path}'.")

    version = get_dumper_version(dumper)
    if compare_versions(version, ABI_DUMPER_MIN_VERSION) < 0:
        raise AbiViewerError(f"'{dumper}' {version} is too old; version {ABI_DUMPER_MIN_VERSION} or newer is required.")

    output_dir.mkdir(parents=True, exist_ok=True)
    command = build_dumper_command(
        object_path=object_path,
        output_dir=output_dir,
        dumper=dumper,
        library_version=library_version,
        skip_cxx=skip_cxx,
        public_headers=public_headers,
        ignore_tags=ignore_tags,
        kernel_export=kernel_export,
        symbols_list=symbols_list,
    )
    LOGGER.info("Create ABI dump: %s", " ".join(command))
    try:
        proc = subprocess.run(command, check=True, capture_output=True, text=True)
    except subprocess.CalledProcessError as exc:
        message = exc.stderr.strip() or exc.stdout.strip() or f"exit code {exc.returncode}"
        raise AbiViewerError(f"Failed to run '{dumper}': {message}") from exc

    log_path = output_dir / "dumper.log"
    log_path.write_text(proc.stdout + proc.stderr, encoding="utf-8")

    dump_path = output_dir / "ABI.dump"
    if not dump_path.is_file():
        raise AbiViewerError(f"'{dumper}' did not produce '{dump_path}'.")
    return dump_path
