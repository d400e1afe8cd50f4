# app.models.pydantic.dgi.documento

"""
Documento de factura electrónica que se envía al PAC (formato JSON del servicio feRecepFEDGI, versión 1.00).
"""

from pydantic import Field

if __name__ == '__main__':
    from os.path import abspath
    from sys import path as sys_path

    sys_path.append(abspath('.'))

from app.models.pydantic.base import Base


DGI_DECIMAL = r'^-?\d+\.\d{2}$'


class DGIRuc(Base):
    dTipoRuc: str = Field(min_length=1)
    dRuc: str = Field(min_length=1)
    dDV: str = Field(min_length=1)


class DGIUbicacion(Base):
    dCodUbi: str
    dCorreg: str
    dDistr: str
    dProv: str


class DGIEmisor(Base):
    dNombEm: str = Field(min_length=1)
    dSucEm: str = Field(min_length=1)
    dCoordEm: str | None = None
    dDirecEm: str
    gRucEmi: DGIRuc
    gUbiEm: DGIUbicacion
    dTfnEm: str | None = None


class DGIReceptor(Base):
    iTipoRec: str
    dNombRec: str = Field(min_length=1)
    dDirecRec: str
    cPaisRec: str = 'PA'
    gUbiRec: DGIUbicacion
    dTfnRec: str | None = None
    dCorElectRec: str | None = None


class DGIDatosGenerales(Base):
    iAmb: int
    iTpEmis: str
    iDoc: str
    dNroDF: str = Field(min_length=1)
    dPtoFacDF: str = Field(min_length=1)
    dFechaEm: str
    dFechaSalida: str | None = None
    iNatOp: str = '01'  # Venta
    iTipoOp: str = '1'  # Salida o venta
    iDest: str = '1'  # Panamá
    iFormCAFE: str = '1'
    iEntCAFE: str = '1'
    dEnvFE: str = '1'
    iTipoTranVenta: str = '2'
    gEmis: DGIEmisor
    gDatRec: DGIReceptor


class DGIPrecios(Base):
    dPrUnit: str = Field(pattern=DGI_DECIMAL)
    dPrUnitDesc: str = Field(default='0.00', pattern=DGI_DECIMAL)
    dPrItem: str = Field(pattern=DGI_DECIMAL)
    dValTotItem: str = Field(pattern=DGI_DECIMAL)


class DGIItbmsItem(Base):
    dTasaITBMS: str = '00'
    dValITBMS: str = Field(default='0.00', pattern=DGI_DECIMAL)


class DGIItem(Base):
    dSecItem: str = Field(pattern=r'^\d{3}$')
    dDescProd: str = Field(min_length=1)
    dCodProd: str | None = None
    dCantCodInt: str
    dCodCPBSabr: str | None = None
    dCodCPBScmp: str | None = None
    gPrecios: DGIPrecios
    gITBMSItem: DGIItbmsItem


class DGIFormaPago(Base):
    iFormaPago: str
    dVlrCuota: str = Field(pattern=DGI_DECIMAL)


class DGITotales(Base):
    dTotNeto: str = Field(pattern=DGI_DECIMAL)
    dTotITBMS: str = Field(pattern=DGI_DECIMAL)
    dTotISC: str = Field(default='0.00', pattern=DGI_DECIMAL)
    dTotGravado: str = '0.00'
    dTotDesc: str = '0.00'
    dVTot: str = Field(pattern=DGI_DECIMAL)
    dTotRec: str = Field(pattern=DGI_DECIMAL)
    iPzPag: int
    dNroItems: int = Field(ge=1)
    dVTotItems: str = Field(pattern=DGI_DECIMAL)
    gFormaPago: list[DGIFormaPago] = Field(min_length=1)


class DGIReceptorNotificacion(Base):
    Email: str = Field(pattern=r'^[^@\s]+@[^@\s]+\.[^@\s]+$')
    Name: str


class DGIReceptoresNotificacion(Base):
    dReceiversList: list[DGIReceptorNotificacion]


class DGICanalNotificacion(Base):
    dChannelName: str = 'Email'
    dReceivers: DGIReceptoresNotificacion


class DGINotificacion(Base):
    dChannels: list[DGICanalNotificacion]


class DGIExtra(Base):
    gCompanyCode: str = Field(min_length=1)
    isValidationsOn: bool = True
    isTestingOn: bool = False
    gNotification: DGINotificacion | None = None


class DGIDocumento(Base):
    dGen: DGIDatosGenerales
    gItem: list[DGIItem] = Field(min_length=1)
    gTot: DGITotales
    gExtra: DGIExtra
    dVerForm: str = '1.00'

    def to_payload(self) -> dict:
        return self.model_dump(mode='json', exclude_none=True)
