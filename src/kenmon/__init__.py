def main() -> None:
    """パッケージエントリポイント。cli.main() に委譲する。

    pyproject.toml の [project.scripts] は kenmon.cli:main を直接参照するため、
    この関数はプログラムから kenmon.main() として呼び出す場合に使う。
    """
    from kenmon.cli import main as cli_main

    cli_main()
