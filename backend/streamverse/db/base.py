from sqlalchemy.orm import DeclarativeBase


# Базовый класс
class Base(DeclarativeBase):
    pass
