# core/csv_codec/__init__.py

"""
CSV record codec core package.

- parser.py : 1 行を field スロットへ分解する single-pass parser
- writer.py : parser と対称な field encoder (quote の二重化 / 必要時のみ囲む)
- lines.py  : text stream / async source -> 行の adapter
- rows.py   : FieldDefinition と header 駆動の CsvRowReader
- models.py : Pydantic モデル定義 (CsvDialect, API request/response)
- service.py: API 用のメイン処理 (Base64 デコード + parse / write)
- errors.py : 例外階層
"""
