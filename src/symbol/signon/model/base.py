from sqlalchemy import String, orm
from sqlalchemy.orm import mapped_column

from typing_extensions import Annotated

str64 = Annotated[str, 64]
str2048 = Annotated[str, 2048]
tokenpk = Annotated[str, mapped_column(String(128), primary_key=True)]


class Base(orm.DeclarativeBase):
    type_annotation_map = {
        str64: String(64),
        str2048: String(2048),
        tokenpk: String(128),
    }
