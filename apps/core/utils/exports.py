import csv
from io import StringIO

from django.http import HttpResponse


def rows_to_csv_bytes(headers, rows):
    output = StringIO()
    writer = csv.writer(output)
    writer.writerow(headers)
    for row in rows:
        writer.writerow(row)
    return output.getvalue().encode('utf-8')


def csv_response(*, headers, rows, filename_base):
    content = rows_to_csv_bytes(headers, rows)
    response = HttpResponse(content, content_type='text/csv')
    response['Content-Disposition'] = f'attachment; filename="{filename_base}.csv"'
    return response
