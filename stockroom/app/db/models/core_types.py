import enum


class Role(str, enum.Enum):
    admin = "admin"
    user = "user"


class MovementKind(str, enum.Enum):
    inflow = "inflow"
    outflow = "outflow"
