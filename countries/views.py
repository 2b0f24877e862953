import time
import logging

from rest_framework.decorators import api_view
from rest_framework.response import Response
from rest_framework import status
from django.http import FileResponse

from .clients import CountriesClient, ExchangeRatesClient
from .queries import CountryQueryService
from .reconciliation import CountryRefresher, CountryStore
from .serializers import CountrySerializer, CountryListQuerySerializer
from .summary import SummaryRenderer

logger = logging.getLogger(__name__)


def get_store():
    return CountryStore()


def get_renderer():
    return SummaryRenderer()


def get_refresher():
    return CountryRefresher(
        store=get_store(),
        countries_client=CountriesClient(),
        rates_client=ExchangeRatesClient(),
        renderer=get_renderer(),
    )


def get_query_service():
    return CountryQueryService(get_store())


@api_view(['POST'])
def refresh_countries(request):
    """
    POST /countries/refresh
    Fetch countries and exchange rates, then update or insert cached data
    in one transaction and regenerate the summary image.
    503 when an upstream source is down, 409 while another refresh runs.
    """
    start_time = time.time()
    result = get_refresher().refresh()
    payload = result.as_payload()
    payload["duration_seconds"] = round(time.time() - start_time, 2)
    return Response(payload, status=status.HTTP_200_OK)


@api_view(['GET'])
def list_countries(request):
    """
    GET /countries
    Filters:  ?region=Africa  ?currency=NGN
    Sorting:  ?sort=gdp_desc | name_asc | population_desc ...
    Default:  name ascending.
    """
    params = CountryListQuerySerializer(data=request.query_params)
    params.is_valid(raise_exception=True)
    countries = get_query_service().list(params.to_query())
    return Response(CountrySerializer(countries, many=True).data)


@api_view(['GET', 'DELETE'])
def country_detail(request, name):
    """
    GET /countries/:name    -> record, or 404 JSON
    DELETE /countries/:name -> 204, or 404 JSON
    """
    service = get_query_service()
    if request.method == 'GET':
        return Response(CountrySerializer(service.get(name)).data)
    service.delete(name)
    logger.info("Deleted country %r", name)
    return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['GET'])
def get_status(request):
    """GET /status -> { total_countries, last_refreshed_at }"""
    return Response(get_query_service().status())


@api_view(['GET'])
def get_summary_image(request):
    """
    GET /countries/image
    Serve the summary PNG, rebuilding it once if the file is missing.
    404 before the first refresh.
    """
    path = get_renderer().ensure_image(get_store())
    response = FileResponse(open(path, 'rb'), content_type='image/png')
    response['Cache-Control'] = 'public, max-age=300'
    return response
