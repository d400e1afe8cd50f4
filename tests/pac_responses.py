"""Respuestas de ejemplo del servicio de recepción del PAC."""

CUFE = 'FE01200000000155646463-2-2017-0000000001-001-0001-20241015-12345678-9'
URL_CUFE = f'https://dgi-fep-test.mef.gob.pa/Consultas/FacturasPorCUFE?CUFE={CUFE}'
XML_FE = '<rFE><dVerForm>1.00</dVerForm><dId>' + CUFE + '</dId></rFE>'


# =============================================================================
# Respuestas del PAC
# =============================================================================


def authorized_response(cufe: str = CUFE, url_cufe: str = URL_CUFE, xml_fe: str = XML_FE) -> dict:
    return {
        'Data': [
            {
                'LoteFE': [{'Xml': xml_fe}],
                'xResRucDV': None,
                'gResRucDV': None,
                'gResProcLote': {'dCodResLote': None, 'dMsgResLote': None},
                'gResProc': {'dCodRes': '0260', 'dMsgRes': 'Autorizado el uso de la Factura Electrónica'},
                'gResProcList': [],
                'xProtFe': [
                    {
                        'rProtFe': {
                            'dVerForm': '1.00',
                            'dCufe': cufe,
                            'gInfProt': {
                                'dId': cufe,
                                'iAmb': '2',
                                'dCUFE': cufe,
                                'dProtAut': '0000000001',
                                'gResProc': {'dCodRes': '0260', 'dMsgRes': 'Autorizado'},
                            },
                        }
                    }
                ],
                'urlCufe': url_cufe,
                'urlCufeAlternative': '',
                'xmlIn': None,
                'sendFail': False,
            }
        ],
        'Status': {'Code': '200', 'Message': 'OK'},
        'Info': {'Datetime': '2024-10-15T10:30:25', 'AcceptedUser': True},
        'Errors': None,
    }


def rejected_response(code: str = '0103', message: str = 'RUC inválido') -> dict:
    return {
        'Data': [
            {
                'LoteFE': [],
                'gResProcLote': {'dCodResLote': None, 'dMsgResLote': None},
                'gResProc': {'dCodRes': code, 'dMsgRes': message},
                'xProtFe': [],
                'urlCufe': '',
                'sendFail': False,
            }
        ],
        'Status': {'Code': '200', 'Message': 'OK'},
        'Errors': None,
    }

