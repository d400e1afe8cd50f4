# app.models.pydantic.dgi.respuesta
from typing import Any

from pydantic import Field

if __name__ == '__main__':
    from os.path import abspath
    from sys import path as sys_path

    sys_path.append(abspath('.'))

from app.models.pydantic.base import Base


class DGIResultado(Base):
    dCodRes: str
    dMsgRes: str = ''


class DGIResultadoLote(Base):
    dCodResLote: str | None = None
    dMsgResLote: str | None = None


class DGILote(Base):
    Xml: str = ''


class DGIInfoProtocolo(Base):
    dId: str = ''
    iAmb: str = ''
    dVerApl: str = ''
    dCUFE: str = ''
    dFecProc: str = ''
    dProtAut: str = ''
    dDigVal: str = ''
    gResProc: DGIResultado | None = None


class DGIProtocolo(Base):
    dVerForm: str = ''
    dCufe: str = ''
    gInfProt: DGIInfoProtocolo | None = None


class DGIProtocoloFE(Base):
    rProtFe: DGIProtocolo


class DGIRegistro(Base):
    LoteFE: list[DGILote] = Field(default_factory=list)
    xResRucDV: Any = None
    gResRucDV: Any = None
    gResProcLote: DGIResultadoLote = Field(default_factory=DGIResultadoLote)
    gResProc: DGIResultado
    gResProcList: list[Any] = Field(default_factory=list)
    xProtFe: list[DGIProtocoloFE] = Field(default_factory=list)
    urlCufe: str = ''
    urlCufeAlternative: str = ''
    xmlIn: Any = None
    sendFail: bool = False


class DGIStatus(Base):
    Code: str
    Message: str = ''


class DGIInfo(Base):
    Datetime: str = ''
    AcceptedUser: bool = False


class DGIRespuesta(Base):
    Data: list[DGIRegistro]
    Status: DGIStatus
    Info: DGIInfo | None = None
    Errors: Any = None
