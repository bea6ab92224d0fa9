"""ビルトインエージェント定義（1ディレクトリ1エージェント）。"""
